"""Order routes: placement and the order stock audit."""

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query, Request, status

from florist_ledger.api.errors import http_error
from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import LedgerError
from florist_ledger.core.identity import CurrentOperator
from florist_ledger.core.rate_limit import limiter
from florist_ledger.core.responses import list_response
from florist_ledger.core.timeutils import parse_date
from florist_ledger.db.session import DbSession
from florist_ledger.schemas.order import OrderCreate
from florist_ledger.services.order_placement_service import get_order_placement_service
from florist_ledger.services.order_stock_audit_service import get_order_stock_audit_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_writes)
def place_order(request: Request, payload: OrderCreate, db: DbSession, operator: CurrentOperator):
    """Place an order and decrement stock for its lines.

    A line failure after the order is saved answers 409 with the per-line
    outcomes and whether applied lines were restored.
    """
    service = get_order_placement_service(db)
    try:
        placement = service.place_order(
            payload.to_draft(),
            operator,
            compensate=payload.compensate_on_failure,
            missing_item_policy=payload.missing_item_policy,
        )
    except LedgerError as e:
        raise http_error(e)
    return placement.to_dict()


@router.get("/audit")
@limiter.limit(settings.rate_limit_reads)
def audit_orders(
    request: Request,
    db: DbSession,
    date_from: str = Query(..., description="YYYY-MM-DD"),
    date_to: str = Query(..., description="YYYY-MM-DD"),
    only_problems: bool = Query(False),
):
    """Orders whose stock decrements do not match their lines."""
    try:
        start: date = parse_date(date_from)
        end: date = parse_date(date_to)
        audits = get_order_stock_audit_service(db).audit_orders(start, end, only_problems=only_problems)
    except LedgerError as e:
        raise http_error(e)
    return list_response([a.to_dict() for a in audits])


@router.get("/{order_id}")
@limiter.limit(settings.rate_limit_reads)
def get_order(request: Request, order_id: int, db: DbSession):
    order = get_order_placement_service(db).get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return {
        "id": order.id,
        "order_date": order.order_date.isoformat(),
        "branch_name": order.branch_name,
        "status": order.status,
        "orderer_name": order.orderer_name,
        "payment_status": order.payment_status,
        "total": order.total,
        "lines": [
            {"item_id": l.item_id, "name": l.name, "quantity": l.quantity, "price": l.price}
            for l in order.lines
        ],
        "transfer": {
            "status": order.transfer.status,
            "process_branch_name": order.transfer.process_branch_name,
            "order_branch_percent": order.transfer.order_branch_percent,
            "process_branch_percent": order.transfer.process_branch_percent,
        } if order.transfer else None,
    }
