"""
Service health endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session
from datetime import datetime
import logging
from banana_friends.database import get_db
from banana_friends.config.settings import Settings, get_settings
from banana_friends.api.schemas import HealthCheckResponse, ServiceStatusResponse
logger = logging.getLogger(__name__)
# Create router
router = APIRouter()

UPSTREAM_SETTINGS = {
    "kie_ai": ("KIE_AI_API_KEY",),
    "seedream": ("SEEDREAM_API_KEY",),
    "kling": ("KLING_ACCESS_KEY", "KLING_SECRET_KEY"),
    "storage": ("STORAGE_ACCESS_KEY_ID", "STORAGE_SECRET_ACCESS_KEY"),
    "ftp": ("FTP_HOST", "FTP_USER", "FTP_PASSWORD", "FTP_BASE_URL"),
}


# Health check endpoints
@router.get("/health", response_model=HealthCheckResponse)
async def health_check(settings: Settings = Depends(get_settings)):
    """Basic health check endpoint"""
    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.now(),
        version=settings.API_VERSION
    )


@router.get("/status", response_model=ServiceStatusResponse)
def service_status(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    """Detailed service status check"""
    try:
        # Check database
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "unhealthy"
    # Only report whether credentials are present
    upstreams = {
        name: all(settings.presence(names).values())
        for name, names in UPSTREAM_SETTINGS.items()
    }
    return ServiceStatusResponse(
        api_status="healthy",
        database_status=db_status,
        upstreams=upstreams
    )
