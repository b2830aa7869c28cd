from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from src.db.core import get_db
from src.models.report import FinancialSummary
from src.models.settlement import ReconciliationReport
from src.routers.dependencies import get_current_user_id, get_query_cache
from src.services.query_cache import QueryCache, REPORTS
from src.services.reports import build_financial_summary
from src.services.reconciliation import build_reconciliation_report

router = APIRouter(
    tags=["reports"],
)


@router.get("/reports/summary", response_model=FinancialSummary)
def read_financial_summary(
    year: Optional[int] = Query(None, ge=1900, le=2100),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Income and expense totals, the monthly series for a year, expenses per
    category and net worth. Defaults to the current year.
    """
    return cache.get_or_load(
        (REPORTS, user_id, "summary", year),
        lambda: build_financial_summary(db, user_id, year)
    )


@router.get("/reconciliation", response_model=ReconciliationReport)
def read_reconciliation_report(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """
    Stored against derived balances for every account and card, plus paid
    bills without a settlement and settlements whose bill is not paid.
    """
    return build_reconciliation_report(db, user_id)
