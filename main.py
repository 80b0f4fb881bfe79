import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from geofora.config import settings
from geofora.container import ServiceContainer, build_container
from geofora.database import Base, engine
from geofora.exception_handlers import register_exception_handlers
from geofora.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from geofora.routes import anonymization, consent, exports, health, privacy
from geofora.scheduler import create_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Tasks to run at application startup and shutdown."""
    logger.info("Starting up the application...")
    if settings.debug:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created (if not existing).")

    services: ServiceContainer = app.state.services
    scheduler = create_scheduler(services, settings.cleanup_interval_minutes)
    scheduler.start()

    yield

    logger.info("Shutting down the application...")
    scheduler.shutdown(wait=False)
    await services.dispatcher.drain()


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Consent, anonymization, export and GDPR pipeline for GeoFora",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.services = services or build_container()

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(consent.router, prefix="/api")
    app.include_router(anonymization.router, prefix="/api")
    app.include_router(exports.router, prefix="/api")
    app.include_router(privacy.router, prefix="/api")

    if settings.debug:
        logger.info(f"Running in {settings.environment} mode")
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    return app


setup_structured_logging("DEBUG" if settings.debug else "INFO", json_format=settings.environment == "production")
app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
