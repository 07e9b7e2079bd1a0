"""Flat registry routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from meterbook.core.database import get_db
from meterbook.schemas.flat import FlatCreate, FlatResponse, FlatUpdate
from meterbook.services import flats as flat_service

router = APIRouter(prefix="/flats", tags=["flats"])


@router.post("/", response_model=FlatResponse, status_code=status.HTTP_201_CREATED)
def create_flat(flat_data: FlatCreate, db: Session = Depends(get_db)):
    """Register a flat."""
    return flat_service.create_flat(db, flat_data)


@router.get("/", response_model=list[FlatResponse])
def list_flats(
    user_id: str | None = Query(None, description="Only flats owned by this user"),
    db: Session = Depends(get_db),
):
    """List flats in billing display order."""
    return flat_service.list_flats(db, user_id)


@router.get("/{flat_id}", response_model=FlatResponse)
def get_flat(flat_id: str, db: Session = Depends(get_db)):
    """Get a flat by its code."""
    return flat_service.get_flat(db, flat_id)


@router.patch("/{flat_id}", response_model=FlatResponse)
def update_flat(flat_id: str, flat_data: FlatUpdate, db: Session = Depends(get_db)):
    """Update tenant name, owner or initial reading of a flat."""
    return flat_service.update_flat(db, flat_id, flat_data)
