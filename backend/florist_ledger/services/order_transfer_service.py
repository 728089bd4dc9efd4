"""Order transfer workflow: hand an order to another branch for fulfilment.

    pending -> accepted -> completed
    pending | accepted -> canceled

Only accepted and completed transfers split revenue during reconciliation.
Each request and status change is announced through the order notifier.
An order holds at most one transfer; a canceled transfer may be replaced by
a new request.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from florist_ledger.core.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationError,
)
from florist_ledger.core.identity import Operator
from florist_ledger.core.timeutils import utcnow
from florist_ledger.models.order import Order, OrderStatus, OrderTransfer, TransferStatus
from florist_ledger.services.notification_service import OrderEvent, get_notifier

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    TransferStatus.PENDING.value: {TransferStatus.ACCEPTED.value, TransferStatus.CANCELED.value},
    TransferStatus.ACCEPTED.value: {TransferStatus.COMPLETED.value, TransferStatus.CANCELED.value},
    TransferStatus.COMPLETED.value: set(),
    TransferStatus.CANCELED.value: set(),
}


def validate_split(order_branch_percent: int, process_branch_percent: int) -> None:
    for name, value in (
        ("order_branch_percent", order_branch_percent),
        ("process_branch_percent", process_branch_percent),
    ):
        if value is None or not 0 <= value <= 100:
            raise ValidationError(f"{name} must be between 0 and 100", field=name)
    if order_branch_percent + process_branch_percent != 100:
        raise ValidationError("Split percentages must add up to 100", field="order_branch_percent")


class OrderTransferService:
    """Creates transfers and moves them through their statuses."""

    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.notifier = notifier or get_notifier()

    def request_transfer(
        self,
        order_id: int,
        process_branch_name: str,
        order_branch_percent: int,
        process_branch_percent: int,
        operator: Operator,
        notes: Optional[str] = None,
    ) -> OrderTransfer:
        order = self._get_order(order_id)
        if order.status == OrderStatus.CANCELED.value:
            raise ValidationError(f"Order {order_id} is canceled", field="order_id")
        if not process_branch_name or not process_branch_name.strip():
            raise ValidationError("Fulfilling branch is required", field="process_branch_name")
        process_branch_name = process_branch_name.strip()
        if process_branch_name == order.branch_name:
            raise ValidationError(
                "Fulfilling branch must differ from the ordering branch", field="process_branch_name"
            )
        validate_split(order_branch_percent, process_branch_percent)

        transfer = order.transfer
        if transfer is not None and transfer.status != TransferStatus.CANCELED.value:
            raise ValidationError(
                f"Order {order_id} already has a {transfer.status} transfer", field="order_id"
            )
        if transfer is None:
            transfer = OrderTransfer(order_id=order.id)
            order.transfer = transfer

        transfer.is_transferred = True
        transfer.status = TransferStatus.PENDING.value
        transfer.process_branch_name = process_branch_name
        transfer.order_branch_percent = order_branch_percent
        transfer.process_branch_percent = process_branch_percent
        transfer.requested_by = operator.ledger_name
        transfer.transfer_date = utcnow()
        transfer.status_changed_at = utcnow()
        transfer.notes = notes

        self._commit()
        logger.info(
            f"Order {order_id} transfer requested: {order.branch_name} -> {process_branch_name} "
            f"({order_branch_percent}/{process_branch_percent}) by {operator.ledger_name}"
        )
        self._notify("transfer_requested", order, transfer)
        return transfer

    def accept(self, order_id: int, operator: Operator, notes: Optional[str] = None) -> OrderTransfer:
        return self._transition(order_id, TransferStatus.ACCEPTED.value, operator, notes)

    def complete(self, order_id: int, operator: Operator, notes: Optional[str] = None) -> OrderTransfer:
        return self._transition(order_id, TransferStatus.COMPLETED.value, operator, notes)

    def cancel(self, order_id: int, operator: Operator, notes: Optional[str] = None) -> OrderTransfer:
        return self._transition(order_id, TransferStatus.CANCELED.value, operator, notes)

    def get_transfer(self, order_id: int) -> Optional[OrderTransfer]:
        return self._get_order(order_id).transfer

    def _transition(
        self, order_id: int, target: str, operator: Operator, notes: Optional[str]
    ) -> OrderTransfer:
        order = self._get_order(order_id)
        transfer = order.transfer
        if transfer is None:
            raise ValidationError(f"Order {order_id} has no transfer", field="order_id")
        if target not in ALLOWED_TRANSITIONS.get(transfer.status, set()):
            raise InvalidTransitionError(transfer.status, target)

        previous = transfer.status
        transfer.status = target
        transfer.status_changed_at = utcnow()
        if target == TransferStatus.CANCELED.value:
            transfer.is_transferred = False
        if notes:
            transfer.notes = notes

        self._commit()
        logger.info(f"Order {order_id} transfer {previous} -> {target} by {operator.ledger_name}")
        self._notify(f"transfer_{target}", order, transfer)
        return transfer

    def _get_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _notify(self, event: str, order: Order, transfer: OrderTransfer) -> None:
        try:
            self.notifier.notify(OrderEvent(
                event=event,
                order_id=order.id,
                branch_name=order.branch_name,
                payload={
                    "process_branch_name": transfer.process_branch_name,
                    "status": transfer.status,
                    "order_branch_percent": transfer.order_branch_percent,
                    "process_branch_percent": transfer.process_branch_percent,
                },
            ))
        except Exception as e:
            logger.error(f"Notifier failed for {event} on order {order.id}: {e}")
