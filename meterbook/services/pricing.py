"""Pricing snapshot and bill arithmetic."""

from decimal import Decimal, InvalidOperation

from pydantic import BaseModel

from meterbook.core.errors import ValidationError

CENTS = Decimal("0.01")
UNITS = Decimal("0.001")


class PricingSnapshot(BaseModel):
    """Tariff settings read once at the start of an approval.

    The snapshot is frozen onto the approved reading so later settings
    changes never alter historical bills.
    """

    tariff_per_unit: Decimal
    minimum_price: Decimal
    unit_factor: Decimal

    model_config = {"frozen": True}


def to_finite_decimal(value: object, field: str = "value") -> Decimal:
    """Convert user input to a finite Decimal or raise ValidationError."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return number


def compute_units_used(corrected_reading: Decimal, previous_reading: Decimal) -> Decimal:
    """Consumption since the previous reading, clamped to 0 (meter resets, rollbacks)."""
    return max(Decimal("0"), corrected_reading - previous_reading).quantize(UNITS)


def compute_amount(units_used: Decimal, pricing: PricingSnapshot) -> Decimal:
    """
    Compute the authoritative billed amount.

    Formula: amount = max(units_used * unit_factor * tariff_per_unit, minimum_price)

    The minimum price is a floor, never added on top.
    """
    energy = units_used * pricing.unit_factor * pricing.tariff_per_unit
    return max(energy, pricing.minimum_price).quantize(CENTS)
