"""Order transfer routes."""

import logging
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Request

from florist_ledger.api.errors import http_error
from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import LedgerError
from florist_ledger.core.identity import CurrentOperator
from florist_ledger.core.rate_limit import limiter
from florist_ledger.db.session import DbSession
from florist_ledger.schemas.transfer import TransferAction, TransferRequest, TransferResponse
from florist_ledger.services.order_transfer_service import OrderTransferService

logger = logging.getLogger(__name__)

router = APIRouter()


class TransferActionName(str, Enum):
    ACCEPT = "accept"
    COMPLETE = "complete"
    CANCEL = "cancel"


@router.post("/{order_id}")
@limiter.limit(settings.rate_limit_writes)
def request_transfer(
    request: Request, order_id: int, payload: TransferRequest, db: DbSession, operator: CurrentOperator
):
    """Hand an order over to another branch, pending its acceptance."""
    try:
        transfer = OrderTransferService(db).request_transfer(
            order_id,
            payload.process_branch_name,
            payload.order_branch_percent,
            payload.process_branch_percent,
            operator,
            notes=payload.notes,
        )
    except LedgerError as e:
        raise http_error(e)
    return TransferResponse.model_validate(transfer).model_dump(mode="json")


@router.post("/{order_id}/{action}")
@limiter.limit(settings.rate_limit_writes)
def change_transfer_status(
    request: Request,
    order_id: int,
    action: TransferActionName,
    db: DbSession,
    operator: CurrentOperator,
    payload: Optional[TransferAction] = None,
):
    service = OrderTransferService(db)
    notes = payload.notes if payload else None
    try:
        transfer = getattr(service, action.value)(order_id, operator, notes=notes)
    except LedgerError as e:
        raise http_error(e)
    return TransferResponse.model_validate(transfer).model_dump(mode="json")
