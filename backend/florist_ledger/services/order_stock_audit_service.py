"""Order stock audit: compare what orders asked for with what the ledger shows.

Order lines are decremented one by one, so an interrupted placement can
leave an order half applied. This audit diffs each order's lines against
its stock history entries (order decrements minus compensation entries)
and classifies the order:

- ok: every line is decremented exactly once (or, for a canceled order,
  everything was restored)
- partial: some lines are decremented, some are not
- missing: no line is decremented
- over: more was decremented than ordered
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import ValidationError
from florist_ledger.core.timeutils import local_day_bounds
from florist_ledger.models.order import Order, OrderStatus
from florist_ledger.models.stock import StockHistoryEntry
from florist_ledger.services.order_placement_service import COMPENSATION_REF, ORDER_REF

logger = logging.getLogger(__name__)


class AuditStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    MISSING = "missing"
    OVER = "over"


@dataclass
class ItemAudit:
    item_id: str
    ordered: int
    decremented: int

    @property
    def outstanding(self) -> int:
        return self.ordered - self.decremented


@dataclass
class OrderStockAudit:
    order_id: int
    branch_name: str
    order_status: str
    status: AuditStatus
    items: List[ItemAudit] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "branch_name": self.branch_name,
            "order_status": self.order_status,
            "status": self.status.value,
            "items": [
                {
                    "item_id": i.item_id,
                    "ordered": i.ordered,
                    "decremented": i.decremented,
                    "outstanding": i.outstanding,
                }
                for i in self.items
            ],
        }


class OrderStockAuditService:
    """Finds orders whose stock decrements do not match their lines."""

    def __init__(self, db: Session):
        self.db = db

    def audit_orders(
        self,
        date_from: date,
        date_to: date,
        only_problems: bool = False,
    ) -> List[OrderStockAudit]:
        if date_from > date_to:
            raise ValidationError("date_from must not be after date_to", field="date_from")

        tz = settings.tzinfo
        start, _ = local_day_bounds(date_from, tz)
        _, end = local_day_bounds(date_to, tz)
        orders = list(self.db.scalars(
            select(Order)
            .options(selectinload(Order.lines))
            .where(Order.order_date >= start, Order.order_date < end)
            .order_by(Order.order_date, Order.id)
        ).all())

        net = self._ledger_net([o.id for o in orders])

        audits = []
        for order in orders:
            audit = self.audit_order(order, net.get(order.id, {}))
            if only_problems and audit.status == AuditStatus.OK:
                continue
            audits.append(audit)

        problems = sum(1 for a in audits if a.status != AuditStatus.OK)
        logger.info(f"Audited {len(orders)} orders from {date_from} to {date_to}: {problems} with stock mismatches")
        return audits

    def audit_order(self, order: Order, decremented: Dict[str, int]) -> OrderStockAudit:
        """Classify one order given its net decrement per item id."""
        canceled = order.status == OrderStatus.CANCELED.value

        ordered: Dict[str, int] = defaultdict(int)
        if not canceled:
            for line in order.lines:
                if line.item_id and line.quantity > 0:
                    ordered[line.item_id] += line.quantity

        item_ids = sorted(set(ordered) | set(decremented))
        items = [ItemAudit(i, ordered.get(i, 0), decremented.get(i, 0)) for i in item_ids]

        if any(i.decremented > i.ordered for i in items):
            status = AuditStatus.OVER
        elif all(i.outstanding == 0 for i in items):
            status = AuditStatus.OK
        elif all(i.decremented == 0 for i in items):
            status = AuditStatus.MISSING
        else:
            status = AuditStatus.PARTIAL

        return OrderStockAudit(
            order_id=order.id,
            branch_name=order.branch_name,
            order_status=order.status,
            status=status,
            items=items,
        )

    def _ledger_net(self, order_ids: List[int]) -> Dict[int, Dict[str, int]]:
        """order id -> item id -> units decremented net of compensation."""
        result: Dict[int, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        if not order_ids:
            return result

        entries = self.db.scalars(
            select(StockHistoryEntry).where(
                StockHistoryEntry.ref_id.in_(order_ids),
                StockHistoryEntry.ref_type.in_([ORDER_REF, COMPENSATION_REF]),
            )
        ).all()
        for entry in entries:
            # Order entries are negative deltas, compensations positive
            result[entry.ref_id][entry.item_id] -= entry.quantity_delta
        return result


def get_order_stock_audit_service(db: Session) -> OrderStockAuditService:
    """Factory function to get the order stock audit service."""
    return OrderStockAuditService(db)
