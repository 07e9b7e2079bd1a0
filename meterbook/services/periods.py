"""Billing month (YYYY-MM) helpers."""

import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from meterbook.core.config import settings

_YM_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def billing_timezone(name: str | None = None):
    """Zone used to bucket submissions into months."""
    name = name or settings.BILLING_TIMEZONE
    if name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


def year_month_for(moment: datetime, tz_name: str | None = None) -> str:
    """Month bucket of a timestamp, e.g. "2025-03"."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    local = moment.astimezone(billing_timezone(tz_name))
    return f"{local.year:04d}-{local.month:02d}"


def is_year_month(value: str | None) -> bool:
    """Validate year-month string in format YYYY-MM."""
    if value is None:
        return False
    return bool(_YM_RE.match(str(value).strip()))
