"""Flat database model."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from meterbook.core.database import Base

if TYPE_CHECKING:
    from meterbook.models.reading import Reading


class Flat(Base):
    """Billing unit that readings are submitted for."""

    __tablename__ = "flats"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    flat_id: Mapped[str] = mapped_column(String(50), unique=True, index=True)  # Display code
    tenant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # Superseded by global settings, kept for old records
    tariff_per_unit: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=4), nullable=True
    )
    # Baseline for the first approval when no approved reading exists
    initial_reading: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=3), nullable=True
    )

    # Bumped by every approval/reopen of one of the flat's readings
    ledger_version: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    # Relationships
    readings: Mapped[list["Reading"]] = relationship(back_populates="flat")
