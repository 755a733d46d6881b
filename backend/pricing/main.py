import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pricing.config import settings
from pricing.database import init_db
from pricing.exceptions import AppError, RateLimitError
from pricing.price_feeds.base import close_http_client
from pricing.routers import health_router, prices_router
from pricing.services.price_refresh_service import price_refresh_service
from pricing.shared_store import close_shared_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Portfolio Pricing API")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(prices_router.router)
app.include_router(health_router.router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


@app.on_event("startup")
async def startup_event():
    logger.info("Initializing database...")
    await init_db()

    if settings.background_refresh_enabled:
        await price_refresh_service.start()
    else:
        logger.info("Background price refresh disabled")


@app.on_event("shutdown")
async def shutdown_event():
    await price_refresh_service.stop()
    await close_http_client()
    await close_shared_store()
    logger.info("Shutdown complete")


@app.get("/")
async def root():
    return {"message": "Portfolio Pricing API", "status": "running"}
