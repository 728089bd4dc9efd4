"""Manual stock corrections and bulk stock-in / stock-out.

Both paths go through the stock transaction manager, one atomic unit per
item. A correction sets an absolute quantity (physical count) and is
ledgered as ``manual_update``; bulk movements add or remove quantities and
report an outcome per item instead of stopping at the first failure.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from florist_ledger.core.exceptions import LedgerError, ValidationError
from florist_ledger.core.identity import Operator
from florist_ledger.models.stock import ChangeType, ItemType
from florist_ledger.services.stock_transaction_service import (
    StockChangeMetadata,
    StockChangeResult,
    StockTransactionManager,
)

logger = logging.getLogger(__name__)


@dataclass
class StockMovementItem:
    item_id: str
    quantity: int
    name: Optional[str] = None
    item_type: str = ItemType.MATERIAL.value
    unit_price: Optional[int] = None


@dataclass
class StockMovementOutcome:
    item_id: str
    success: bool
    result: Optional[StockChangeResult] = None
    error: Optional[LedgerError] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"item_id": self.item_id, "success": self.success}
        if self.result is not None:
            data.update(self.result.to_dict())
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


class StockAdjustmentService:
    """Operator-driven stock changes outside of orders."""

    def __init__(self, db: Session, stock_manager: Optional[StockTransactionManager] = None):
        self.db = db
        self.stock = stock_manager or StockTransactionManager(db)

    def set_stock(
        self,
        item_id: str,
        branch_name: str,
        new_quantity: int,
        operator: Operator,
        notes: Optional[str] = None,
    ) -> StockChangeResult:
        """Set an item's stock to an absolute quantity.

        A no-op (7 -> 7) still writes a ``manual_update`` entry with delta 0,
        so every count is visible in the history.
        """
        if new_quantity is None or new_quantity < 0:
            raise ValidationError("New quantity must not be negative", field="new_quantity")

        result = self.stock.set_stock_level(
            item_id,
            branch_name,
            new_quantity,
            StockChangeMetadata(operator=operator.ledger_name, ref_type="manual", notes=notes),
        )
        logger.info(
            f"Manual stock update of {result.item_name} at {branch_name}: "
            f"{result.from_stock} -> {result.to_stock}"
        )
        return result

    def record_movements(
        self,
        items: List[StockMovementItem],
        change_type: ChangeType | str,
        branch_name: str,
        operator: Operator,
        supplier: Optional[str] = None,
    ) -> List[StockMovementOutcome]:
        """Bulk stock-in or stock-out; each item succeeds or fails on its own.

        Stock-in creates rows for items the branch does not carry yet.
        """
        change_type = ChangeType(change_type)
        if change_type == ChangeType.MANUAL_UPDATE:
            raise ValidationError("Use set_stock for manual updates", field="change_type")
        if not items:
            raise ValidationError("No items given", field="items")
        for item in items:
            if item.quantity is None or item.quantity <= 0:
                raise ValidationError(
                    f"Quantity for '{item.name or item.item_id}' must be positive", field="items"
                )

        outcomes: List[StockMovementOutcome] = []
        for item in items:
            delta = item.quantity if change_type == ChangeType.IN else -item.quantity
            total_amount = item.unit_price * item.quantity if item.unit_price is not None else None
            metadata = StockChangeMetadata(
                operator=operator.ledger_name,
                unit_price=item.unit_price,
                supplier=supplier,
                total_amount=total_amount,
                create_missing=change_type == ChangeType.IN,
                item_name=item.name,
                item_type=item.item_type,
            )
            try:
                result = self.stock.apply_stock_change(
                    item.item_id, branch_name, delta, change_type, metadata
                )
            except LedgerError as e:
                logger.warning(f"Stock {change_type.value} of {item.item_id} at {branch_name} failed: {e}")
                outcomes.append(StockMovementOutcome(item_id=item.item_id, success=False, error=e))
                continue
            outcomes.append(StockMovementOutcome(item_id=item.item_id, success=True, result=result))

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(
            f"Stock {change_type.value} at {branch_name}: {succeeded}/{len(outcomes)} items recorded"
        )
        return outcomes


def get_stock_adjustment_service(db: Session) -> StockAdjustmentService:
    """Factory function to get the stock adjustment service."""
    return StockAdjustmentService(db)
