"""Billing summary routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from meterbook.core.database import get_db
from meterbook.schemas.billing import BillingMonths, MonthlySummary
from meterbook.services import billing as billing_service

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/months", response_model=BillingMonths)
def list_billing_months(db: Session = Depends(get_db)):
    """Months that have approved readings, most recent first."""
    return billing_service.list_billing_months(db)


@router.get("/summary/{year_month}", response_model=MonthlySummary)
def get_monthly_summary(year_month: str, db: Session = Depends(get_db)):
    """
    Billing summary for a month (YYYY-MM).

    Each entry computes:
        total_amount = units_used * unit_factor * tariff + minimum_charge

    Readings bill to the month they were submitted in.
    """
    return billing_service.get_monthly_summary(db, year_month)
