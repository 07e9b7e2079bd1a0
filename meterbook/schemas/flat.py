"""Flat Pydantic schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator


class FlatBase(BaseModel):
    """Base flat schema."""

    flat_id: str


class FlatCreate(FlatBase):
    """Schema for registering a flat."""

    tenant_name: str | None = None
    user_id: str | None = None
    tariff_per_unit: Decimal | None = None
    initial_reading: Decimal | None = None

    @field_validator("flat_id")
    @classmethod
    def validate_flat_id(cls, v: str) -> str:
        """Validate the flat code is not empty."""
        if not v or not v.strip():
            raise ValueError("Flat id cannot be empty")
        return v.strip()


class FlatUpdate(BaseModel):
    """Schema for updating a flat."""

    tenant_name: str | None = None
    user_id: str | None = None
    tariff_per_unit: Decimal | None = None
    initial_reading: Decimal | None = None


class FlatResponse(FlatBase):
    """Schema for flat response."""

    id: int
    tenant_name: str | None
    user_id: str | None
    tariff_per_unit: Decimal | None
    initial_reading: Decimal | None
    created_at: datetime

    model_config = {"from_attributes": True}
