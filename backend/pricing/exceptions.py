"""
Domain exceptions for the pricing service.

Services raise these instead of fastapi.HTTPException to avoid coupling
the pricing core to the web framework. A global exception handler in
main.py translates them into HTTP responses.
"""


class AppError(Exception):
    """Base application error with an HTTP-equivalent status code."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Input validation failure (400)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NotFoundError(AppError):
    """No cached price and no fallback success (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ProviderUnavailableError(AppError):
    """
    A single upstream feed failed (network, HTTP status or payload).

    Always recoverable by trying the next source, so the waterfall absorbs
    it; it never reaches the HTTP layer in normal operation.
    """

    def __init__(self, provider: str, message: str = "Price provider unavailable"):
        self.provider = provider
        super().__init__(f"{provider}: {message}", status_code=503)


class StoreUnavailableError(AppError):
    """Durable database or shared key-value store unreachable (503)."""

    def __init__(self, message: str = "Price store unavailable"):
        super().__init__(message, status_code=503)


class RateLimitError(AppError):
    """Too many requests (429)."""

    def __init__(self, message: str, retry_after: int = None):
        self.retry_after = retry_after
        super().__init__(message, status_code=429)


class CooldownActiveError(RateLimitError):
    """Fallback provider is cooling down for this asset; retry later (429)."""

    def __init__(
        self,
        message: str = "Price fetch is cooling down, try again later",
        retry_after: int = None,
    ):
        super().__init__(message, retry_after=retry_after)
