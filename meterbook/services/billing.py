"""Billing aggregation - monthly summaries and receipts from approved readings."""

from collections.abc import Iterable
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meterbook.core.config import settings
from meterbook.core.errors import DependencyError, InvalidTransitionError, ValidationError
from meterbook.models.enums import PricingSource, ReadingStatus
from meterbook.models.flat import Flat
from meterbook.models.reading import Reading
from meterbook.schemas.billing import (
    BillingEntry,
    BillingMonths,
    FlatSummaryRow,
    MonthlySummary,
    Receipt,
)
from meterbook.services.flats import flat_sort_key
from meterbook.services.periods import is_year_month
from meterbook.services.pricing import CENTS
from meterbook.services.readings import get_reading
from meterbook.services.resolution import as_utc


class BillingFactors(BaseModel):
    """Unit factor and minimum charge applied to one entry, tagged with their origin."""

    unit_factor: Decimal
    minimum_charge: Decimal
    source: PricingSource


def billing_factors(
    reading: Reading,
    default_unit_factor: Decimal | None = None,
    default_minimum_charge: Decimal | None = None,
) -> BillingFactors:
    """
    Resolve unit factor and minimum charge for an approved reading.

    Readings approved with a pricing snapshot carry both values; legacy
    records approved before snapshotting existed fall back to the
    configured defaults. The minimum charge is a line item and is unrelated
    to the minimum price used as the floor of the approved amount.
    """
    if reading.unit_factor_at_approval is not None:
        minimum = reading.minimum_charge_at_approval
        return BillingFactors(
            unit_factor=reading.unit_factor_at_approval,
            minimum_charge=minimum if minimum is not None else settings.DEFAULT_MINIMUM_CHARGE,
            source=PricingSource.SNAPSHOT,
        )
    return BillingFactors(
        unit_factor=default_unit_factor
        if default_unit_factor is not None
        else settings.DEFAULT_UNIT_FACTOR,
        minimum_charge=default_minimum_charge
        if default_minimum_charge is not None
        else settings.DEFAULT_MINIMUM_CHARGE,
        source=PricingSource.DEFAULT,
    )


def build_entry(reading: Reading) -> BillingEntry:
    """
    Itemize the bill of one approved reading.

    Formula: total_amount = units_used * unit_factor * tariff_at_approval + minimum_charge
    """
    factors = billing_factors(reading)
    units_used = reading.units_used or Decimal("0")
    tariff = reading.tariff_at_approval or Decimal("0")

    total_kg = units_used * factors.unit_factor
    energy_amount = (total_kg * tariff).quantize(CENTS)
    minimum_charge = factors.minimum_charge.quantize(CENTS)

    return BillingEntry(
        reading_id=reading.id,
        flat_id=reading.flat_id,
        year_month=reading.year_month,
        previous_reading=reading.previous_reading or Decimal("0"),
        current_reading=reading.corrected_reading or Decimal("0"),
        units_used=units_used,
        unit_factor=factors.unit_factor,
        total_kg=total_kg,
        tariff=tariff,
        energy_amount=energy_amount,
        minimum_charge=minimum_charge,
        total_amount=energy_amount + minimum_charge,
        amount=reading.amount or Decimal("0"),
        pricing_source=factors.source,
        created_at=reading.created_at,
        approved_at=reading.approved_at,
    )


def summarize_month(
    approved_readings: Iterable[Reading],
    year_month: str,
    tenant_names: dict[str, str | None] | None = None,
    flat_order: list[str] | None = None,
) -> MonthlySummary:
    """
    Aggregate approved readings submitted in a month.

    Readings bill to the month they were submitted in, not approved in.
    Rows are per flat, ordered by the configured flat table and then
    alphabetically; entries inside a row by submission time.
    """
    tenant_names = tenant_names or {}
    by_flat: dict[str, list[BillingEntry]] = {}
    for reading in approved_readings:
        if reading.status != ReadingStatus.APPROVED or reading.year_month != year_month:
            continue
        by_flat.setdefault(reading.flat_id, []).append(build_entry(reading))

    rows: list[FlatSummaryRow] = []
    for flat_id in sorted(by_flat, key=lambda f: flat_sort_key(f, flat_order)):
        entries = sorted(by_flat[flat_id], key=lambda e: (as_utc(e.created_at), str(e.reading_id)))
        rows.append(
            FlatSummaryRow(
                flat_id=flat_id,
                tenant_name=tenant_names.get(flat_id),
                entries=entries,
                units_used=sum((e.units_used for e in entries), Decimal("0")),
                total_kg=sum((e.total_kg for e in entries), Decimal("0")),
                total_amount=sum((e.total_amount for e in entries), Decimal("0")),
            )
        )

    all_entries = [e for row in rows for e in row.entries]
    return MonthlySummary(
        year_month=year_month,
        rows=rows,
        reading_count=len(all_entries),
        grand_total=sum((e.total_amount for e in all_entries), Decimal("0")),
        approved_amount_total=sum((e.amount for e in all_entries), Decimal("0")),
    )


def get_monthly_summary(db: Session, year_month: str) -> MonthlySummary:
    """Build the billing summary of a month from the store."""
    if not is_year_month(year_month):
        raise ValidationError("year_month must be in YYYY-MM format")
    year_month = year_month.strip()

    try:
        readings = (
            db.query(Reading)
            .filter(
                Reading.status == ReadingStatus.APPROVED,
                Reading.year_month == year_month,
            )
            .all()
        )
        flats = db.query(Flat).filter(Flat.flat_id.in_({r.flat_id for r in readings})).all()
    except SQLAlchemyError as exc:
        raise DependencyError("Could not read approved readings") from exc

    return summarize_month(readings, year_month, {f.flat_id: f.tenant_name for f in flats})


def list_billing_months(db: Session) -> BillingMonths:
    """Months with at least one approved reading, most recent first."""
    try:
        rows = (
            db.query(Reading.year_month)
            .filter(Reading.status == ReadingStatus.APPROVED)
            .distinct()
            .all()
        )
    except SQLAlchemyError as exc:
        raise DependencyError("Could not read billing months") from exc
    return BillingMonths(months=sorted((row[0] for row in rows), reverse=True))


def build_receipt(db: Session, reading_id: UUID) -> Receipt:
    """Receipt data for an approved reading, due a fixed number of days after approval."""
    reading = get_reading(db, reading_id)
    if reading.status != ReadingStatus.APPROVED:
        raise InvalidTransitionError("issue a receipt for", ReadingStatus(reading.status).value)

    entry = build_entry(reading)
    reading_date = reading.approved_at or reading.created_at
    return Receipt(
        **entry.model_dump(),
        tenant_name=reading.flat.tenant_name if reading.flat else None,
        reading_date=reading_date,
        due_date=reading_date + timedelta(days=settings.RECEIPT_DUE_DAYS),
    )
