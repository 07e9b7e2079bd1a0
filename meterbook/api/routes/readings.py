"""Reading lifecycle routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from meterbook.core.database import get_db
from meterbook.models.enums import ReadingStatus
from meterbook.schemas.billing import Receipt
from meterbook.schemas.reading import (
    ReadingApprove,
    ReadingReason,
    ReadingResponse,
    ReadingSubmit,
)
from meterbook.services import billing as billing_service
from meterbook.services import readings as reading_service

router = APIRouter(prefix="/readings", tags=["readings"])


@router.post("/", response_model=ReadingResponse, status_code=status.HTTP_201_CREATED)
def submit_reading(reading_data: ReadingSubmit, db: Session = Depends(get_db)):
    """Submit a reading for a flat; it starts out pending."""
    return reading_service.submit_reading(
        db,
        reading_data.flat_id,
        reading_data.image_ref,
        reading_data.ocr_reading,
        reading_data.ocr_confidence,
    )


@router.get("/", response_model=list[ReadingResponse])
def list_readings(
    flat_id: str | None = Query(None, description="Only readings of this flat"),
    reading_status: ReadingStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    """List readings, most recent first."""
    return reading_service.list_readings(db, flat_id, reading_status)


@router.get("/{reading_id}", response_model=ReadingResponse)
def get_reading(reading_id: UUID, db: Session = Depends(get_db)):
    """Get a reading by ID."""
    return reading_service.get_reading(db, reading_id)


@router.post("/{reading_id}/approve", response_model=ReadingResponse)
def approve_reading(
    reading_id: UUID,
    approval: ReadingApprove,
    db: Session = Depends(get_db),
):
    """
    Approve a pending reading with the corrected meter value.

    Freezes previous reading, units used, amount and the current pricing
    onto the reading.
    """
    return reading_service.approve_reading(db, reading_id, approval.corrected_reading)


@router.post("/{reading_id}/reject", response_model=ReadingResponse)
def reject_reading(
    reading_id: UUID,
    rejection: ReadingReason,
    db: Session = Depends(get_db),
):
    """Reject a pending reading with a reason."""
    return reading_service.reject_reading(db, reading_id, rejection.reason)


@router.post("/{reading_id}/reopen", response_model=ReadingResponse)
def reopen_reading(
    reading_id: UUID,
    reopen: ReadingReason,
    db: Session = Depends(get_db),
):
    """Move an approved reading back to pending so it can be approved again."""
    return reading_service.reopen_reading(db, reading_id, reopen.reason)


@router.get("/{reading_id}/receipt", response_model=Receipt)
def get_receipt(reading_id: UUID, db: Session = Depends(get_db)):
    """Itemized receipt data for an approved reading."""
    return billing_service.build_receipt(db, reading_id)
