"""Reading Pydantic schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from meterbook.models.enums import ReadingStatus


class ReadingSubmit(BaseModel):
    """Schema for a tenant submission."""

    flat_id: str
    image_ref: str = ""
    ocr_reading: Decimal | None = None
    ocr_confidence: float | None = None

    @field_validator("flat_id")
    @classmethod
    def validate_flat_id(cls, v: str) -> str:
        """Validate the flat code is not empty."""
        if not v or not v.strip():
            raise ValueError("Flat id cannot be empty")
        return v.strip()


class ReadingApprove(BaseModel):
    """Schema for approving a reading with the admin-entered value."""

    # Left loose so the service reports non-finite or non-numeric input itself
    corrected_reading: Decimal | float | str

    @field_validator("corrected_reading", mode="before")
    @classmethod
    def reject_booleans(cls, v: object) -> object:
        """JSON true/false would otherwise be read as 1/0."""
        if isinstance(v, bool):
            raise ValueError("corrected_reading must be a number")
        return v


class ReadingReason(BaseModel):
    """Schema for reject and reopen requests."""

    reason: str = ""


class ReadingResponse(BaseModel):
    """Schema for reading response."""

    id: UUID
    flat_id: str
    image_ref: str
    ocr_reading: Decimal | None
    ocr_confidence: float | None
    corrected_reading: Decimal | None
    previous_reading: Decimal | None
    units_used: Decimal | None
    amount: Decimal | None
    status: ReadingStatus
    year_month: str
    created_at: datetime
    approved_at: datetime | None
    tariff_at_approval: Decimal | None
    unit_factor_at_approval: Decimal | None
    minimum_price_at_approval: Decimal | None
    minimum_charge_at_approval: Decimal | None
    rejection_reason: str | None
    reopen_reason: str | None

    model_config = {"from_attributes": True}
