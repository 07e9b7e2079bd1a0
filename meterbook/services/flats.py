"""Flat registry service."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meterbook.core.config import settings
from meterbook.core.errors import DependencyError, NotFoundError, ValidationError
from meterbook.models.flat import Flat
from meterbook.schemas.flat import FlatCreate, FlatUpdate
from meterbook.services.pricing import to_finite_decimal

logger = logging.getLogger(__name__)


def flat_sort_key(flat_id: str, flat_order: list[str] | None = None) -> tuple[int, int, str]:
    """Display order: the configured flat table first, then alphabetical."""
    order = settings.FLAT_ORDER if flat_order is None else flat_order
    if flat_id in order:
        return 0, order.index(flat_id), flat_id
    return 1, 0, flat_id


def find_flat(db: Session, flat_id: str) -> Flat | None:
    """Look up a flat by its display code."""
    return db.query(Flat).filter(Flat.flat_id == flat_id).first()


def get_flat(db: Session, flat_id: str) -> Flat:
    """Get a flat by its display code."""
    try:
        flat = find_flat(db, flat_id)
    except SQLAlchemyError as exc:
        raise DependencyError("Could not read flat") from exc
    if not flat:
        raise NotFoundError(f"Flat '{flat_id}' not found")
    return flat


def list_flats(db: Session, user_id: str | None = None) -> list[Flat]:
    """List flats in display order, optionally only those owned by a user."""
    try:
        query = db.query(Flat)
        if user_id is not None:
            query = query.filter(Flat.user_id == user_id)
        flats = query.all()
    except SQLAlchemyError as exc:
        raise DependencyError("Could not list flats") from exc
    return sorted(flats, key=lambda f: flat_sort_key(f.flat_id))


def _check_initial_reading(data: FlatCreate | FlatUpdate) -> None:
    if data.initial_reading is not None:
        value = to_finite_decimal(data.initial_reading, "initial_reading")
        if value < 0:
            raise ValidationError("initial_reading cannot be negative")


def create_flat(db: Session, data: FlatCreate) -> Flat:
    """Register a new flat."""
    _check_initial_reading(data)
    if find_flat(db, data.flat_id):
        raise ValidationError(f"Flat '{data.flat_id}' already exists")

    flat = Flat(
        flat_id=data.flat_id,
        tenant_name=data.tenant_name,
        user_id=data.user_id,
        tariff_per_unit=data.tariff_per_unit,
        initial_reading=data.initial_reading,
    )
    try:
        db.add(flat)
        db.commit()
        db.refresh(flat)
    except SQLAlchemyError as exc:
        db.rollback()
        raise DependencyError("Could not save flat") from exc

    logger.info("Flat %s registered", flat.flat_id)
    return flat


def update_flat(db: Session, flat_id: str, data: FlatUpdate) -> Flat:
    """Update tenant name, owner, legacy tariff or initial reading."""
    _check_initial_reading(data)
    flat = get_flat(db, flat_id)

    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(flat, field, value)

    try:
        db.commit()
        db.refresh(flat)
    except SQLAlchemyError as exc:
        db.rollback()
        raise DependencyError("Could not save flat") from exc
    return flat
