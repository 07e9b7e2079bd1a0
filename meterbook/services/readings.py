"""Reading lifecycle service - submission, approval, rejection and reopen.

Every transition is a single unit of work: it either commits all of its
field changes or rolls back and raises. Transitions that touch one flat's
readings are serialized per flat, in-process by a lock and across
processes by a compare-and-swap on ``Flat.ledger_version``, so approvals
always resolve the previous reading against the latest committed state.
"""

import logging
import math
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meterbook.core.config import settings
from meterbook.core.errors import (
    ConcurrencyError,
    DependencyError,
    InvalidTransitionError,
    MeterbookError,
    NotFoundError,
    ValidationError,
)
from meterbook.models.enums import ReadingEventKind, ReadingStatus
from meterbook.models.flat import Flat
from meterbook.models.reading import Reading
from meterbook.services.events import EventChannel, ReadingEvent, reading_events
from meterbook.services.flats import get_flat
from meterbook.services.periods import year_month_for
from meterbook.services.pricing import (
    PricingSnapshot,
    compute_amount,
    compute_units_used,
    to_finite_decimal,
)
from meterbook.services.resolution import approval_sort_key, as_utc, resolve_previous_reading
from meterbook.services.settings import get_pricing_snapshot

logger = logging.getLogger(__name__)

_flat_locks: dict[str, threading.Lock] = {}
_flat_locks_guard = threading.Lock()


@contextmanager
def flat_guard(flat_id: str) -> Iterator[None]:
    """Serialize transitions of one flat within this process, failing fast."""
    with _flat_locks_guard:
        lock = _flat_locks.setdefault(flat_id, threading.Lock())
    if not lock.acquire(timeout=settings.STORE_TIMEOUT_SECONDS):
        raise DependencyError(f"Timed out waiting for other updates of flat '{flat_id}'")
    try:
        yield
    finally:
        lock.release()


def _advisory_value(value: Decimal | float | None) -> Decimal | None:
    """OCR values are suggestions; anything unusable is stored as None."""
    if value is None:
        return None
    try:
        return to_finite_decimal(value, "ocr_reading")
    except ValidationError:
        return None


def _advisory_confidence(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return float(value)


def _require_reason(reason: str | None, action: str) -> str:
    if reason is None or not reason.strip():
        raise ValidationError(f"A reason is required to {action} a reading")
    return reason.strip()


def _publish(events: EventChannel, kind: ReadingEventKind, reading: Reading) -> None:
    events.publish(
        ReadingEvent(
            kind=kind,
            reading_id=reading.id,
            flat_id=reading.flat_id,
            status=reading.status,
        )
    )


def submit_reading(
    db: Session,
    flat_id: str,
    image_ref: str = "",
    ocr_value: Decimal | float | None = None,
    ocr_confidence: float | None = None,
    *,
    submitted_at: datetime | None = None,
    events: EventChannel = reading_events,
) -> Reading:
    """Create a pending reading for a flat."""
    flat = get_flat(db, flat_id)
    created_at = submitted_at or datetime.now(UTC)
    year_month = year_month_for(created_at)

    if settings.ENFORCE_MONTHLY_LIMIT:
        try:
            existing = (
                db.query(Reading)
                .filter(
                    Reading.flat_id == flat.flat_id,
                    Reading.year_month == year_month,
                    Reading.status != ReadingStatus.REJECTED,
                )
                .first()
            )
        except SQLAlchemyError as exc:
            raise DependencyError("Could not check existing readings") from exc
        if existing:
            raise ValidationError(
                f"Flat '{flat.flat_id}' already has a reading for {year_month}"
            )

    reading = Reading(
        flat_id=flat.flat_id,
        image_ref=image_ref or "",
        ocr_reading=_advisory_value(ocr_value),
        ocr_confidence=_advisory_confidence(ocr_confidence),
        status=ReadingStatus.PENDING,
        created_at=created_at,
        year_month=year_month,
    )
    try:
        db.add(reading)
        db.commit()
        db.refresh(reading)
    except SQLAlchemyError as exc:
        db.rollback()
        raise DependencyError("Could not save reading") from exc

    logger.info("Reading %s submitted for flat %s (%s)", reading.id, flat.flat_id, year_month)
    _publish(events, ReadingEventKind.SUBMITTED, reading)
    return reading


def get_reading(db: Session, reading_id: UUID) -> Reading:
    """Get a reading by ID."""
    try:
        reading = db.query(Reading).filter(Reading.id == reading_id).first()
    except SQLAlchemyError as exc:
        raise DependencyError("Could not read reading") from exc
    if not reading:
        raise NotFoundError(f"Reading {reading_id} not found")
    return reading


def list_readings(
    db: Session,
    flat_id: str | None = None,
    status: ReadingStatus | None = None,
) -> list[Reading]:
    """
    List readings, optionally filtered by flat and/or status.

    Approved readings are ordered by approval time (falling back to creation
    time), everything else by creation time; most recent first.
    """
    try:
        query = db.query(Reading)
        if flat_id is not None:
            query = query.filter(Reading.flat_id == flat_id)
        if status is not None:
            query = query.filter(Reading.status == status)
        readings = query.all()
    except SQLAlchemyError as exc:
        raise DependencyError("Could not list readings") from exc

    if status == ReadingStatus.APPROVED:
        return sorted(readings, key=approval_sort_key, reverse=True)
    return sorted(readings, key=lambda r: (as_utc(r.created_at), str(r.id)), reverse=True)


def _load_flat_for_update(db: Session, flat_id: str) -> Flat:
    flat = (
        db.query(Flat)
        .filter(Flat.flat_id == flat_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if flat is None:
        raise NotFoundError(f"Flat '{flat_id}' not found")
    return flat


def _approved_readings_for_flat(db: Session, flat_id: str, exclude_id: UUID) -> list[Reading]:
    return (
        db.query(Reading)
        .filter(
            Reading.flat_id == flat_id,
            Reading.status == ReadingStatus.APPROVED,
            Reading.id != exclude_id,
        )
        .populate_existing()
        .all()
    )


def _bump_ledger_version(db: Session, flat: Flat, seen_version: int) -> None:
    """Compare-and-swap the flat's ledger version; fails if another writer won."""
    result = db.execute(
        update(Flat)
        .where(Flat.id == flat.id, Flat.ledger_version == seen_version)
        .values(ledger_version=seen_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyError(
            f"Flat '{flat.flat_id}' was updated concurrently, retry the operation"
        )


def _run_transition(
    db: Session,
    reading_id: UUID,
    action: str,
    required_status: ReadingStatus,
    apply: Callable[[Session, Reading, Flat], None],
) -> Reading:
    """Load, check and mutate a reading under the flat's guard, then commit."""
    flat_id = get_reading(db, reading_id).flat_id

    with flat_guard(flat_id):
        try:
            reading = (
                db.query(Reading).filter(Reading.id == reading_id).populate_existing().first()
            )
            if reading is None:
                raise NotFoundError(f"Reading {reading_id} not found")
            if reading.status != required_status:
                raise InvalidTransitionError(action, ReadingStatus(reading.status).value)

            flat = _load_flat_for_update(db, flat_id)
            seen_version = flat.ledger_version
            apply(db, reading, flat)
            _bump_ledger_version(db, flat, seen_version)
            db.commit()
            db.refresh(reading)
        except ConcurrencyError:
            db.rollback()
            logger.warning("Concurrent update of flat %s while trying to %s", flat_id, action)
            raise
        except MeterbookError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Store failure while trying to %s reading %s: %s", action, reading_id, exc)
            raise DependencyError(f"Could not {action} reading") from exc
    return reading


def approve_reading(
    db: Session,
    reading_id: UUID,
    corrected_value: Decimal | float | str,
    pricing: PricingSnapshot | None = None,
    *,
    events: EventChannel = reading_events,
) -> Reading:
    """
    Approve a pending reading with the admin-entered value.

    units_used = max(0, corrected - previous)
    amount = max(units_used * unit_factor * tariff_per_unit, minimum_price)

    The pricing snapshot (passed in, or read once from the settings store)
    is frozen onto the reading.
    """
    corrected = to_finite_decimal(corrected_value, "corrected_reading")

    def apply(session: Session, reading: Reading, flat: Flat) -> None:
        snapshot = pricing or get_pricing_snapshot(session)
        previous = resolve_previous_reading(
            _approved_readings_for_flat(session, flat.flat_id, reading.id),
            flat.initial_reading,
        )
        units_used = compute_units_used(corrected, previous)

        reading.corrected_reading = corrected
        reading.previous_reading = previous
        reading.units_used = units_used
        reading.amount = compute_amount(units_used, snapshot)
        reading.tariff_at_approval = snapshot.tariff_per_unit
        reading.unit_factor_at_approval = snapshot.unit_factor
        reading.minimum_price_at_approval = snapshot.minimum_price
        reading.minimum_charge_at_approval = settings.DEFAULT_MINIMUM_CHARGE
        reading.approved_at = datetime.now(UTC)
        reading.status = ReadingStatus.APPROVED

    reading = _run_transition(db, reading_id, "approve", ReadingStatus.PENDING, apply)
    logger.info(
        "Reading %s approved for flat %s: %s -> %s, %s units, amount %s",
        reading.id,
        reading.flat_id,
        reading.previous_reading,
        reading.corrected_reading,
        reading.units_used,
        reading.amount,
    )
    _publish(events, ReadingEventKind.APPROVED, reading)
    return reading


def reject_reading(
    db: Session,
    reading_id: UUID,
    reason: str | None,
    *,
    events: EventChannel = reading_events,
) -> Reading:
    """Reject a pending reading; billing fields stay empty."""
    reason = _require_reason(reason, "reject")

    def apply(session: Session, reading: Reading, flat: Flat) -> None:
        reading.status = ReadingStatus.REJECTED
        reading.rejection_reason = reason

    reading = _run_transition(db, reading_id, "reject", ReadingStatus.PENDING, apply)
    logger.info("Reading %s rejected for flat %s: %s", reading.id, reading.flat_id, reason)
    _publish(events, ReadingEventKind.REJECTED, reading)
    return reading


def reopen_reading(
    db: Session,
    reading_id: UUID,
    reason: str | None,
    *,
    events: EventChannel = reading_events,
) -> Reading:
    """
    Move an approved reading back to pending.

    Clears everything computed or frozen at approval; the corrected value
    is kept for audit and replaced by the next approval.
    """
    reason = _require_reason(reason, "reopen")

    def apply(session: Session, reading: Reading, flat: Flat) -> None:
        reading.status = ReadingStatus.PENDING
        reading.previous_reading = None
        reading.units_used = None
        reading.amount = None
        reading.approved_at = None
        reading.tariff_at_approval = None
        reading.unit_factor_at_approval = None
        reading.minimum_price_at_approval = None
        reading.minimum_charge_at_approval = None
        reading.rejection_reason = None
        reading.reopen_reason = reason

    reading = _run_transition(db, reading_id, "reopen", ReadingStatus.APPROVED, apply)
    logger.info("Reading %s reopened for flat %s: %s", reading.id, reading.flat_id, reason)
    _publish(events, ReadingEventKind.REOPENED, reading)
    return reading
