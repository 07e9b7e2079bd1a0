"""Global pricing settings service."""

import logging
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meterbook.core.config import settings as app_settings
from meterbook.core.errors import DependencyError, ValidationError
from meterbook.models.settings import GLOBAL_SETTINGS_ID, GlobalSettings
from meterbook.schemas.settings import SettingsResponse, SettingsUpdate
from meterbook.services.pricing import PricingSnapshot, to_finite_decimal

logger = logging.getLogger(__name__)


def default_pricing() -> PricingSnapshot:
    """Pricing used until an admin has saved settings."""
    return PricingSnapshot(
        tariff_per_unit=app_settings.DEFAULT_TARIFF_PER_UNIT,
        minimum_price=app_settings.DEFAULT_MINIMUM_PRICE,
        unit_factor=app_settings.DEFAULT_UNIT_FACTOR,
    )


def _get_row(db: Session) -> GlobalSettings | None:
    return db.query(GlobalSettings).filter(GlobalSettings.id == GLOBAL_SETTINGS_ID).first()


def get_pricing_snapshot(db: Session) -> PricingSnapshot:
    """Read the current pricing in a single query."""
    try:
        row = _get_row(db)
    except SQLAlchemyError as exc:
        raise DependencyError("Could not read pricing settings") from exc
    if row is None:
        return default_pricing()
    return PricingSnapshot(
        tariff_per_unit=row.tariff_per_unit,
        minimum_price=row.minimum_price,
        unit_factor=row.unit_factor,
    )


def get_settings(db: Session) -> SettingsResponse:
    """Get the settings applied to new approvals."""
    try:
        row = _get_row(db)
    except SQLAlchemyError as exc:
        raise DependencyError("Could not read pricing settings") from exc
    if row is None:
        pricing = default_pricing()
        return SettingsResponse(**pricing.model_dump(), updated_at=None)
    return SettingsResponse(
        tariff_per_unit=row.tariff_per_unit,
        minimum_price=row.minimum_price,
        unit_factor=row.unit_factor,
        updated_at=row.updated_at,
    )


def _validated(data: SettingsUpdate) -> dict[str, Decimal]:
    values: dict[str, Decimal] = {}
    for field, raw in data.model_dump(exclude_unset=True, exclude_none=True).items():
        value = to_finite_decimal(raw, field)
        if value < 0:
            raise ValidationError(f"{field} cannot be negative")
        if field == "unit_factor" and value == 0:
            raise ValidationError("unit_factor must be greater than zero")
        values[field] = value
    return values


def update_settings(db: Session, data: SettingsUpdate) -> SettingsResponse:
    """Update pricing; only approvals made afterwards use the new values."""
    values = _validated(data)
    try:
        row = _get_row(db)
        if row is None:
            pricing = default_pricing()
            row = GlobalSettings(
                id=GLOBAL_SETTINGS_ID,
                tariff_per_unit=pricing.tariff_per_unit,
                minimum_price=pricing.minimum_price,
                unit_factor=pricing.unit_factor,
            )
            db.add(row)
        for field, value in values.items():
            setattr(row, field, value)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise DependencyError("Could not save pricing settings") from exc

    logger.info("Pricing settings updated: %s", {k: str(v) for k, v in values.items()})
    return get_settings(db)
