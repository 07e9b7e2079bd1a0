"""Previous-reading resolution for approvals."""

from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal

from meterbook.models.reading import Reading


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def approval_sort_key(reading: Reading) -> tuple[datetime, datetime, str]:
    """Recency key: approved_at, falling back to created_at; ties broken by id."""
    approved = reading.approved_at or reading.created_at
    return as_utc(approved), as_utc(reading.created_at), str(reading.id)


def latest_approved(approved_readings: Iterable[Reading]) -> Reading | None:
    """Return the most recently approved reading, or None."""
    return max(approved_readings, key=approval_sort_key, default=None)


def resolve_previous_reading(
    approved_readings: Iterable[Reading],
    initial_reading: Decimal | None,
) -> Decimal:
    """
    Resolve the baseline an approval is billed against.

    1. The corrected value of the flat's most recent approved reading
    2. Otherwise the flat's initial reading
    3. Otherwise 0

    The caller passes the flat's approved readings without the one being
    approved, loaded inside the same serialized unit of work.
    """
    latest = latest_approved(approved_readings)
    if latest is not None and latest.corrected_reading is not None:
        return latest.corrected_reading
    if initial_reading is not None:
        return initial_reading
    return Decimal("0")
