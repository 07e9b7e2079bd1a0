"""Global settings schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class SettingsUpdate(BaseModel):
    """Schema for a partial settings update."""

    tariff_per_unit: Decimal | None = None
    minimum_price: Decimal | None = None
    unit_factor: Decimal | None = None


class SettingsResponse(BaseModel):
    """Schema for the pricing currently applied to new approvals."""

    tariff_per_unit: Decimal
    minimum_price: Decimal
    unit_factor: Decimal
    updated_at: datetime | None
