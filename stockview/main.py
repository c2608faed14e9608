import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockview import __version__
from stockview.config import Settings, get_settings
from stockview.database import create_engine, create_session_factory, init_db
from stockview.routers import accounts_router, credentials_router, scrape_router, views_router
from stockview.services.container import ServiceContainer
from stockview.tasks import start_scheduler, shutdown_scheduler

# Configure logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    # Startup
    logger.info("Starting Stockview service...")
    app_settings: Settings = app.state.settings
    engine = create_engine(app_settings.database_url)
    await init_db(engine)

    services = ServiceContainer(app_settings, create_session_factory(engine))
    app.state.services = services
    start_scheduler(services)
    logger.info(f"Service started successfully (scrape mode: {app_settings.scrape_mode})")

    yield

    # Shutdown
    logger.info("Shutting down Stockview service...")
    shutdown_scheduler()
    await services.close()
    await engine.dispose()
    logger.info("Service shutdown complete")


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app = FastAPI(
        title="Stockview",
        description="Broker holdings scraping and multi-account portfolio views",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = app_settings or settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(scrape_router)
    app.include_router(accounts_router)
    app.include_router(views_router)
    app.include_router(credentials_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for uptime monitoring."""
        return {
            "status": "healthy",
            "service": "stockview",
            "version": __version__,
        }

    @app.get("/")
    async def root():
        return {
            "service": "Stockview",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
