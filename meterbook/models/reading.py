"""Reading database model - one submission and its approval lifecycle."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from meterbook.core.database import Base
from meterbook.models.enums import ReadingStatus

if TYPE_CHECKING:
    from meterbook.models.flat import Flat


class Reading(Base):
    """Meter reading submitted by a tenant."""

    __tablename__ = "readings"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    flat_id: Mapped[str] = mapped_column(ForeignKey("flats.flat_id"), index=True)
    image_ref: Mapped[str] = mapped_column(String(1024), default="")

    # Machine suggestion, never authoritative
    ocr_reading: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=3), nullable=True
    )
    ocr_confidence: Mapped[float | None] = mapped_column(nullable=True)

    # Admin-entered value; kept across a reopen for audit
    corrected_reading: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=3), nullable=True
    )

    # Computed and frozen at approval
    previous_reading: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=3), nullable=True
    )
    units_used: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=3), nullable=True
    )
    amount: Mapped[Decimal | None] = mapped_column(Numeric(precision=12, scale=2), nullable=True)
    tariff_at_approval: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=4), nullable=True
    )
    unit_factor_at_approval: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=4), nullable=True
    )
    minimum_price_at_approval: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=2), nullable=True
    )
    # Receipt line item, separate from the minimum price floor
    minimum_charge_at_approval: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=2), nullable=True
    )

    status: Mapped[ReadingStatus] = mapped_column(
        String(20), default=ReadingStatus.PENDING, index=True
    )
    year_month: Mapped[str] = mapped_column(String(7), index=True)  # YYYY-MM of submission

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        index=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reopen_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Relationships
    flat: Mapped["Flat"] = relationship(back_populates="readings")
