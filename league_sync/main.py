"""
FastAPI application for the league sync service.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from league_sync.api.routes import sync
from league_sync.core.config import settings
from league_sync.core.database import SessionLocal, init_db
from league_sync.core.logging import configure_logging, get_logger
from league_sync.services.container import build_services
from league_sync.services.integrity.service import DataIntegrityService
from league_sync.repositories.store import StoreGateway

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


async def integrity_audit_job() -> None:
    """Nightly integrity audit; reports only, never repairs."""
    db = SessionLocal()
    try:
        report = await DataIntegrityService(StoreGateway(db)).audit()
        if report.has_issues:
            logger.warning(f"⚠️ Integrity audit found issues: {report.cleanup_recommendations}")
        else:
            logger.info(f"✅ Integrity audit clean ({report.total_team_records} records)")
    except Exception as e:
        logger.error(f"❌ Integrity audit failed: {e}")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Build services at startup and tear them down on shutdown."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    init_db()

    services = build_services(SessionLocal())
    services.scheduler.start()
    services.scheduler.add_cron_job(
        'integrity_audit',
        integrity_audit_job,
        name='Nightly integrity audit',
        hour=settings.INTEGRITY_AUDIT_HOUR,
        minute=0,
    )
    if await services.start_automatic_sync():
        logger.info("Automatic sync enabled")
    app.state.services = services

    yield

    await services.aclose()
    logger.info("Application stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.include_router(sync.router)
    app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    async def health() -> dict:
        return {'status': 'ok', 'version': settings.APP_VERSION}

    return app


app = create_app()
