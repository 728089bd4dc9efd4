"""Order Placement Coordinator.

Persists an order, then decrements stock for each line through the stock
transaction manager. Each line is its own atomic unit, so a failure part
way through leaves earlier lines applied. Depending on the compensation
policy those lines are then either restored with reversing stock-in entries
(the order is canceled) or kept as they are. A reversal that cannot be
written does not stop the others; it is reported on the raised error.

Outcome per line:
- Applied: stock decremented, ledger entry written
- Skipped: not attempted (bad quantity, no item id, unknown item, aborted)
- Failed: the line that stopped the order
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import (
    ConcurrencyExhaustedError,
    InsufficientStockError,
    ItemNotFoundError,
    LedgerError,
    OrderPlacementError,
    ValidationError,
)
from florist_ledger.core.identity import Operator
from florist_ledger.core.timeutils import as_utc, local_to_utc, utcnow
from florist_ledger.models.branch import Branch
from florist_ledger.models.order import (
    Order,
    OrderLine,
    OrderStatus,
    OrderTransfer,
    PaymentStatus,
    TransferStatus,
)
from florist_ledger.models.stock import ChangeType
from florist_ledger.services.notification_service import OrderEvent, get_notifier
from florist_ledger.services.stock_transaction_service import (
    StockChangeMetadata,
    StockTransactionManager,
)

logger = logging.getLogger(__name__)

ORDER_REF = "order"
COMPENSATION_REF = "order_compensation"


# ===== DRAFTS =====

@dataclass
class OrderLineDraft:
    name: str
    quantity: int
    price: int = 0
    item_id: Optional[str] = None


@dataclass
class TransferDraft:
    process_branch_name: Optional[str] = None
    status: str = TransferStatus.PENDING.value
    order_branch_percent: Optional[int] = None
    process_branch_percent: Optional[int] = None
    notes: Optional[str] = None


@dataclass
class OrderDraft:
    """Everything needed to place an order, as entered on the order form."""

    branch_name: str
    orderer_name: str
    lines: List[OrderLineDraft] = field(default_factory=list)
    order_date: Optional[datetime] = None
    orderer_contact: Optional[str] = None
    orderer_company: Optional[str] = None
    is_anonymous: bool = False
    order_type: Optional[str] = None
    receipt_type: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: str = PaymentStatus.PENDING.value
    discount: int = 0
    delivery_fee: int = 0
    total: Optional[int] = None  # computed from lines when omitted
    request: Optional[str] = None
    transfer: Optional[TransferDraft] = None

    @property
    def subtotal(self) -> int:
        return sum(line.price * line.quantity for line in self.lines if line.quantity > 0)


# ===== OUTCOMES =====

@dataclass
class Applied:
    line_index: int
    item_id: str
    item_name: str
    quantity: int
    from_stock: int
    to_stock: int
    entry_id: Optional[int] = None
    status: str = "applied"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line_index,
            "status": self.status,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "from_stock": self.from_stock,
            "to_stock": self.to_stock,
            "entry_id": self.entry_id,
        }


@dataclass
class Skipped:
    line_index: int
    item_id: Optional[str]
    item_name: str
    reason: str  # non_positive_quantity, missing_item_id, item_not_found, aborted
    status: str = "skipped"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line_index,
            "status": self.status,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "reason": self.reason,
        }


@dataclass
class Failed:
    line_index: int
    item_id: Optional[str]
    item_name: str
    error: LedgerError
    status: str = "failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line_index,
            "status": self.status,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "error": self.error.to_dict(),
        }


LineOutcome = Union[Applied, Skipped, Failed]


@dataclass
class OrderPlacement:
    order_id: int
    outcomes: List[LineOutcome]

    @property
    def succeeded(self) -> bool:
        return not any(isinstance(o, Failed) for o in self.outcomes)

    @property
    def applied(self) -> List[Applied]:
        return [o for o in self.outcomes if isinstance(o, Applied)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "succeeded": self.succeeded,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class OrderPlacementService:
    """Places orders and drives per-line stock decrements."""

    def __init__(
        self,
        db: Session,
        notifier=None,
        stock_manager: Optional[StockTransactionManager] = None,
    ):
        self.db = db
        self.notifier = notifier or get_notifier()
        self.stock = stock_manager or StockTransactionManager(db)

    def place_order(
        self,
        draft: OrderDraft,
        operator: Operator,
        compensate: Optional[bool] = None,
        missing_item_policy: Optional[str] = None,
    ) -> OrderPlacement:
        """Persist the order and decrement stock line by line.

        Raises ValidationError before anything is written, and
        OrderPlacementError (carrying the per-line outcomes) when a line
        fails after the order was saved.
        """
        if compensate is None:
            compensate = settings.order_compensate_on_failure
        if missing_item_policy is None:
            missing_item_policy = settings.order_missing_item_policy
        if missing_item_policy not in ("skip", "fail"):
            raise ValidationError(
                f"Unknown missing item policy '{missing_item_policy}'", field="missing_item_policy"
            )

        self._validate(draft)
        order = self._persist_order(draft, operator)
        order_date = as_utc(order.order_date)

        outcomes: List[LineOutcome] = []
        failure: Optional[LedgerError] = None

        for index, line in enumerate(draft.lines):
            if failure is not None:
                outcomes.append(Skipped(index, line.item_id, line.name, "aborted"))
                continue
            if line.quantity <= 0:
                outcomes.append(Skipped(index, line.item_id, line.name, "non_positive_quantity"))
                continue
            if not line.item_id:
                outcomes.append(Skipped(index, None, line.name, "missing_item_id"))
                continue

            metadata = StockChangeMetadata(
                operator=operator.ledger_name,
                ts=order_date,
                unit_price=line.price,
                total_amount=line.price * line.quantity,
                ref_type=ORDER_REF,
                ref_id=order.id,
            )
            try:
                result = self.stock.apply_stock_change(
                    line.item_id, draft.branch_name, -line.quantity, ChangeType.OUT, metadata
                )
            except ItemNotFoundError as e:
                if missing_item_policy == "skip":
                    logger.warning(f"Order {order.id}: {e}; line skipped")
                    outcomes.append(Skipped(index, line.item_id, line.name, "item_not_found"))
                    continue
                failure = e
                outcomes.append(Failed(index, line.item_id, line.name, e))
                continue
            except (InsufficientStockError, ConcurrencyExhaustedError) as e:
                failure = e
                outcomes.append(Failed(index, line.item_id, line.name, e))
                continue

            outcomes.append(Applied(
                line_index=index,
                item_id=result.item_id,
                item_name=result.item_name,
                quantity=line.quantity,
                from_stock=result.from_stock,
                to_stock=result.to_stock,
                entry_id=result.entry_id,
            ))

        placement = OrderPlacement(order_id=order.id, outcomes=outcomes)

        if failure is not None:
            logger.warning(f"Order {order.id} stopped at a failing line: {failure}")
            compensated = False
            reversal_failures: List[Dict[str, Any]] = []
            if compensate:
                reversal_failures = self._compensate(order, placement.applied, draft.branch_name, operator)
                compensated = not reversal_failures
            self._notify("order_failed", order, {
                "error": failure.to_dict(),
                "compensated": compensated,
                "reversal_failures": reversal_failures,
            })
            raise OrderPlacementError(placement.order_id, outcomes, failure, compensated, reversal_failures)

        logger.info(
            f"Order {order.id} placed at {order.branch_name}: "
            f"{len(placement.applied)}/{len(outcomes)} lines decremented"
        )
        self._notify("order_placed", order, {"total": order.total, "lines": len(outcomes)})
        return placement

    def get_order(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    # ===== INTERNALS =====

    def _validate(self, draft: OrderDraft) -> None:
        if not draft.orderer_name or not draft.orderer_name.strip():
            raise ValidationError("Orderer name is required", field="orderer_name")
        if not draft.branch_name or not draft.branch_name.strip():
            raise ValidationError("Branch name is required", field="branch_name")
        if not draft.lines:
            raise ValidationError("Order needs at least one line", field="lines")
        for line in draft.lines:
            if not line.name or not line.name.strip():
                raise ValidationError("Every order line needs a name", field="lines")
            if line.price < 0:
                raise ValidationError(f"Price of '{line.name}' cannot be negative", field="lines")
        if draft.discount < 0 or draft.delivery_fee < 0 or (draft.total is not None and draft.total < 0):
            raise ValidationError("Order amounts cannot be negative", field="total")

        if draft.transfer is not None:
            t = draft.transfer
            if t.process_branch_name and t.process_branch_name == draft.branch_name:
                raise ValidationError(
                    "Fulfilling branch must differ from the ordering branch", field="transfer"
                )
            if (t.order_branch_percent is None) != (t.process_branch_percent is None):
                raise ValidationError("Both split percentages are required together", field="transfer")
            if t.order_branch_percent is not None:
                if not (0 <= t.order_branch_percent <= 100 and 0 <= t.process_branch_percent <= 100):
                    raise ValidationError("Split percentages must be between 0 and 100", field="transfer")
                if t.order_branch_percent + t.process_branch_percent != 100:
                    raise ValidationError("Split percentages must add up to 100", field="transfer")

        if settings.validate_branch_names:
            names = [draft.branch_name]
            if draft.transfer is not None and draft.transfer.process_branch_name:
                names.append(draft.transfer.process_branch_name)
            for name in names:
                exists = self.db.scalar(select(Branch.id).where(Branch.name == name))
                if exists is None:
                    raise ValidationError(f"Unknown branch '{name}'", field="branch_name")

    def _persist_order(self, draft: OrderDraft, operator: Operator) -> Order:
        subtotal = draft.subtotal
        total = draft.total
        if total is None:
            total = max(subtotal - draft.discount, 0) + draft.delivery_fee

        order = Order(
            order_date=local_to_utc(draft.order_date, settings.tzinfo) or utcnow(),
            branch_name=draft.branch_name.strip(),
            status=OrderStatus.PROCESSING.value,
            orderer_name=draft.orderer_name.strip(),
            orderer_contact=draft.orderer_contact,
            orderer_company=draft.orderer_company,
            is_anonymous=draft.is_anonymous,
            order_type=draft.order_type,
            receipt_type=draft.receipt_type,
            payment_method=draft.payment_method,
            payment_status=draft.payment_status,
            subtotal=subtotal,
            discount=draft.discount,
            delivery_fee=draft.delivery_fee,
            total=total,
            request=draft.request,
            created_by=operator.ledger_name,
        )
        for line in draft.lines:
            order.lines.append(OrderLine(
                item_id=line.item_id,
                name=line.name.strip(),
                quantity=line.quantity,
                price=line.price,
            ))
        if draft.transfer is not None:
            order.transfer = OrderTransfer(
                is_transferred=True,
                status=draft.transfer.status,
                process_branch_name=draft.transfer.process_branch_name,
                order_branch_percent=draft.transfer.order_branch_percent,
                process_branch_percent=draft.transfer.process_branch_percent,
                requested_by=operator.ledger_name,
                notes=draft.transfer.notes,
            )

        self.db.add(order)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)
        logger.info(f"Order {order.id} saved for {order.orderer_name} at {order.branch_name}")
        return order

    def _compensate(
        self, order: Order, applied: List[Applied], branch_name: str, operator: Operator
    ) -> List[Dict[str, Any]]:
        """Restore applied lines with stock-in entries and cancel the order.

        Every applied line is attempted even when an earlier reversal fails.
        Returns the reversals that could not be written; the order is
        canceled either way so the stock audit reports what is left over.
        """
        failures: List[Dict[str, Any]] = []
        for outcome in applied:
            metadata = StockChangeMetadata(
                operator=operator.ledger_name,
                ref_type=COMPENSATION_REF,
                ref_id=order.id,
                notes=f"Reversal of order {order.id}",
            )
            try:
                self.stock.apply_stock_change(
                    outcome.item_id, branch_name, outcome.quantity, ChangeType.IN, metadata
                )
            except LedgerError as e:
                logger.error(f"Order {order.id}: could not restore {outcome.quantity} of {outcome.item_id}: {e}")
                failures.append({
                    "line": outcome.line_index,
                    "item_id": outcome.item_id,
                    "quantity": outcome.quantity,
                    "error": e.to_dict(),
                })

        order.status = OrderStatus.CANCELED.value
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Order {order.id}: could not mark canceled: {e}")
            failures.append({
                "line": None,
                "item_id": None,
                "quantity": 0,
                "error": {"error": "cancel_failed", "message": str(e)},
            })

        restored = len(applied) - sum(1 for f in failures if f["line"] is not None)
        logger.info(f"Order {order.id} canceled; {restored}/{len(applied)} applied lines restored")
        return failures

    def _notify(self, event: str, order: Order, payload: Dict[str, Any]) -> None:
        try:
            self.notifier.notify(OrderEvent(
                event=event,
                order_id=order.id,
                branch_name=order.branch_name,
                payload=payload,
            ))
        except Exception as e:
            logger.error(f"Notifier failed for {event} on order {order.id}: {e}")


def get_order_placement_service(db: Session) -> OrderPlacementService:
    """Factory function to get the order placement service."""
    return OrderPlacementService(db)
