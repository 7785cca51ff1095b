import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.context import AppContext, build_context
from app.routes import packages, bookings, payments, deliveries

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the API. Without a context one is built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "context", None) is None
        if owned:
            app.state.context = build_context(settings)
        logger.info("Studio Bookings API starting (%s)", "debug" if settings.DEBUG else "production")
        yield
        if owned:
            app.state.context.close()
            app.state.context = None
        logger.info("Studio Bookings API stopped")

    app = FastAPI(
        title="Studio Bookings API",
        description="Bookings, payments and photo delivery for a photography studio",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGIN_LIST,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(packages.router, prefix="/api/packages", tags=["Packages"])
    app.include_router(bookings.router, prefix="/api/bookings", tags=["Bookings"])
    app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
    app.include_router(deliveries.router, prefix="/api/deliveries", tags=["Deliveries"])

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to Studio Bookings API",
            "status": "healthy",
            "version": "1.0.0",
            "environment": "development" if settings.DEBUG else "production"
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "message": "Studio Bookings API is running",
            "environment": "development" if settings.DEBUG else "production"
        }

    return app


configure_logging()
app = create_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app.main:app", host="0.0.0.0", port=port, reload=settings.DEBUG)
