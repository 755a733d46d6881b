"""
API Routers

Thin FastAPI routers over the pricing services.
"""

from pricing.routers import health_router
from pricing.routers import prices_router

__all__ = [
    "health_router",
    "prices_router",
]
