"""Global pricing settings - a single admin-owned row."""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Numeric
from sqlalchemy.orm import Mapped, mapped_column

from meterbook.core.database import Base

GLOBAL_SETTINGS_ID = 1


class GlobalSettings(Base):
    """Current tariff, minimum price and unit factor applied to new approvals."""

    __tablename__ = "global_settings"

    id: Mapped[int] = mapped_column(primary_key=True, default=GLOBAL_SETTINGS_ID)
    tariff_per_unit: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=4))
    minimum_price: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2))
    unit_factor: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=4))
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
