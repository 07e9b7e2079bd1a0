"""Health check route."""

from fastapi import APIRouter

from meterbook.core.config import settings

router = APIRouter()


@router.get("/health")
def health_check():
    """Report service liveness."""
    return {"status": "healthy", "service": "meterbook", "version": settings.VERSION}
