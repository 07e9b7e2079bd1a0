"""Global pricing settings routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from meterbook.core.database import get_db
from meterbook.schemas.settings import SettingsResponse, SettingsUpdate
from meterbook.services import settings as settings_service

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/", response_model=SettingsResponse)
def get_settings(db: Session = Depends(get_db)):
    """Pricing applied to new approvals."""
    return settings_service.get_settings(db)


@router.patch("/", response_model=SettingsResponse)
def update_settings(data: SettingsUpdate, db: Session = Depends(get_db)):
    """Update pricing; readings approved earlier keep their frozen values."""
    return settings_service.update_settings(db, data)
