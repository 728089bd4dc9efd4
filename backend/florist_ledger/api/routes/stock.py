"""Stock routes: catalog rows, manual corrections, bulk movements and history."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status
from sqlalchemy import func, select

from florist_ledger.api.errors import http_error
from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import LedgerError
from florist_ledger.core.identity import CurrentOperator
from florist_ledger.core.rate_limit import limiter
from florist_ledger.core.responses import paginated_response
from florist_ledger.core.sanitize import LIKE_ESCAPE, contains_pattern
from florist_ledger.core.timeutils import parse_date
from florist_ledger.db.session import DbSession
from florist_ledger.models.stock import StockRow
from florist_ledger.schemas.stock import (
    StockHistoryResponse,
    StockItemCreate,
    StockMovementRequest,
    StockRowResponse,
    StockSetRequest,
)
from florist_ledger.services.stock_adjustment_service import StockMovementItem, get_stock_adjustment_service
from florist_ledger.services.stock_history_service import StockHistoryFilter, StockHistoryService
from florist_ledger.services.stock_transaction_service import get_stock_transaction_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/items")
@limiter.limit(settings.rate_limit_reads)
def list_stock_items(
    request: Request,
    db: DbSession,
    branch: Optional[str] = None,
    item_type: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """Current stock rows, optionally filtered by branch, type and name."""
    conditions = []
    if branch and branch != "all":
        conditions.append(StockRow.branch_name == branch)
    if item_type and item_type != "all":
        conditions.append(StockRow.item_type == item_type)
    if search:
        conditions.append(func.lower(StockRow.name).like(contains_pattern(search), escape=LIKE_ESCAPE))

    total = db.scalar(select(func.count(StockRow.id)).where(*conditions)) or 0
    rows = db.scalars(
        select(StockRow)
        .where(*conditions)
        .order_by(StockRow.branch_name, StockRow.name)
        .offset(skip)
        .limit(limit)
    ).all()
    items = [StockRowResponse.model_validate(r).model_dump(mode="json") for r in rows]
    return paginated_response(items, total, skip, limit)


@router.post("/items", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_writes)
def register_stock_item(request: Request, payload: StockItemCreate, db: DbSession, operator: CurrentOperator):
    """Add an item to a branch catalog with zero stock."""
    try:
        row = get_stock_transaction_manager(db).register_item(**payload.model_dump())
    except LedgerError as e:
        raise http_error(e)
    return StockRowResponse.model_validate(row).model_dump(mode="json")


@router.post("/adjust")
@limiter.limit(settings.rate_limit_writes)
def adjust_stock(request: Request, payload: StockSetRequest, db: DbSession, operator: CurrentOperator):
    """Set an item's stock to a counted quantity."""
    try:
        result = get_stock_adjustment_service(db).set_stock(
            payload.item_id,
            payload.branch_name,
            payload.new_quantity,
            operator,
            notes=payload.notes,
        )
    except LedgerError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/movements")
@limiter.limit(settings.rate_limit_writes)
def record_stock_movements(
    request: Request, payload: StockMovementRequest, db: DbSession, operator: CurrentOperator
):
    """Bulk stock-in or stock-out; each item is reported on its own."""
    items = [StockMovementItem(**line.model_dump()) for line in payload.items]
    try:
        outcomes = get_stock_adjustment_service(db).record_movements(
            items, payload.type, payload.branch_name, operator, supplier=payload.supplier
        )
    except LedgerError as e:
        raise http_error(e)
    return {
        "succeeded": sum(1 for o in outcomes if o.success),
        "failed": sum(1 for o in outcomes if not o.success),
        "items": [o.to_dict() for o in outcomes],
    }


@router.get("/history")
@limiter.limit(settings.rate_limit_reads)
def get_stock_history(
    request: Request,
    db: DbSession,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    branch: Optional[str] = None,
    item_type: Optional[str] = None,
    type: Optional[str] = Query(None, description="in, out or manual_update"),
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    """Read-only ledger view, newest first."""
    try:
        filters = StockHistoryFilter(
            date_from=parse_date(date_from) if date_from else None,
            date_to=parse_date(date_to) if date_to else None,
            branch=branch,
            item_type=item_type,
            change_type=type,
            search=search,
        )
        entries, total = StockHistoryService(db).query(filters, skip=skip, limit=limit)
    except LedgerError as e:
        raise http_error(e)
    items = [StockHistoryResponse.model_validate(e).model_dump(mode="json") for e in entries]
    return paginated_response(items, total, skip, limit)
