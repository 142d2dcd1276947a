"""FastAPI application for the coffee and tea store."""

from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.store_service.routers import (
    auth_router,
    cart_router,
    categories_router,
    discounts_router,
    images_router,
    orders_router,
    payment_router,
    products_router,
)
from slowapi.errors import RateLimitExceeded


def create_app() -> FastAPI:
    """Create and configure the store FastAPI app."""
    settings = get_settings()
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        description="Coffee and tea storefront - catalog, cart, orders, loyalty, VNPay.",
    )

    # Add rate limiter state to app
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Add observability (structured logging + request tracing + CORS)
    add_observability_middleware(app)

    # Add global exception handlers for consistent error responses
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "store", "environment": settings.ENVIRONMENT}

    for router in (
        auth_router,
        products_router,
        categories_router,
        cart_router,
        orders_router,
        discounts_router,
        payment_router,
        images_router,
    ):
        app.include_router(router, prefix="/api")

    # Uploaded images and thumbnails
    app.mount(
        "/uploads",
        StaticFiles(directory=Path(settings.UPLOAD_DIR), check_dir=False),
        name="uploads",
    )

    return app


app = create_app()
