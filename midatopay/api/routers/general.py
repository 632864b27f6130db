from fastapi import APIRouter, Depends
import structlog

from midatopay import __version__
from midatopay.api.services import Services
from midatopay.api.dependencies import get_services
from midatopay.models import utcnow

logger = structlog.get_logger()

router = APIRouter(tags=["General"])


@router.get("/", tags=["Health"])
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "MidatoPay API",
        "version": __version__,
        "status": "operational",
        "websocket": "/ws"
    }


@router.get("/health", tags=["Health"])
async def health_check(services: Services = Depends(get_services)):
    """Health check endpoint - works even without database"""
    database = "not_configured"
    if services.db is not None:
        try:
            await services.db.ping()
            database = "connected"
        except Exception as e:
            logger.warning("health_check_database_unavailable", error=str(e))
            database = "unavailable"

    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "network": services.config.network,
        "database": database,
        "watcher": "running" if services.watcher and services.watcher.running else "stopped",
        "websocket_connections": services.hub.connection_count
    }
