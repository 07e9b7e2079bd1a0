"""Billing summary and receipt schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from meterbook.models.enums import PricingSource


class BillingEntry(BaseModel):
    """Itemized bill for one approved reading.

    total_amount = units_used * unit_factor * tariff + minimum_charge

    `amount` is the authoritative figure frozen at approval
    (max(energy, minimum price)); `total_amount` is the receipt figure with
    the minimum charge as a separate line item. Both are reported.
    """

    reading_id: UUID
    flat_id: str
    year_month: str
    previous_reading: Decimal
    current_reading: Decimal
    units_used: Decimal
    unit_factor: Decimal
    total_kg: Decimal
    tariff: Decimal
    energy_amount: Decimal
    minimum_charge: Decimal
    total_amount: Decimal
    amount: Decimal
    pricing_source: PricingSource
    created_at: datetime
    approved_at: datetime | None


class FlatSummaryRow(BaseModel):
    """All entries of one flat in a billing month."""

    flat_id: str
    tenant_name: str | None
    entries: list[BillingEntry]
    units_used: Decimal
    total_kg: Decimal
    total_amount: Decimal


class MonthlySummary(BaseModel):
    """Billing summary for a month, rows in display order."""

    year_month: str
    rows: list[FlatSummaryRow]
    reading_count: int
    grand_total: Decimal  # Sum of total_amount
    approved_amount_total: Decimal  # Sum of the frozen amounts


class BillingMonths(BaseModel):
    """Months that have approved readings, most recent first."""

    months: list[str]


class Receipt(BillingEntry):
    """Receipt data for one approved reading (rendering is done by clients)."""

    tenant_name: str | None
    reading_date: datetime
    due_date: datetime
