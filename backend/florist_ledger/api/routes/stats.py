"""Daily revenue statistics routes."""

import logging

from fastapi import APIRouter, HTTPException, Request

from florist_ledger.api.errors import http_error
from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import LedgerError
from florist_ledger.core.identity import CurrentOperator
from florist_ledger.core.rate_limit import limiter
from florist_ledger.db.session import DbSession
from florist_ledger.schemas.stats import DailyStatResponse
from florist_ledger.services.revenue_reconciliation_service import RevenueReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/daily/{date}/reconcile")
@limiter.limit(settings.rate_limit_writes)
def reconcile_daily_stats(request: Request, date: str, db: DbSession, operator: CurrentOperator):
    """Recompute the day's statistics from its orders and overwrite them."""
    logger.info(f"Reconciliation of {date} requested by {operator.ledger_name}")
    try:
        stat = RevenueReconciliationService(db).reconcile(date)
    except LedgerError as e:
        raise http_error(e)
    return DailyStatResponse.model_validate(stat).model_dump(mode="json")


@router.get("/daily/{date}")
@limiter.limit(settings.rate_limit_reads)
def get_daily_stats(request: Request, date: str, db: DbSession):
    try:
        stat = RevenueReconciliationService(db).get_daily_stat(date)
    except LedgerError as e:
        raise http_error(e)
    if stat is None:
        raise HTTPException(status_code=404, detail=f"No statistics for {date}")
    return DailyStatResponse.model_validate(stat).model_dump(mode="json")
