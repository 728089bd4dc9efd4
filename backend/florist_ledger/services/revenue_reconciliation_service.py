"""Revenue reconciliation: recompute a day's revenue statistics from orders.

The daily stat row for a date is derived only from the orders placed on
that local calendar day, never from its previous value, so re-running the
job for a date yields the same figures. The row is overwritten as a whole
once the scan has finished; a failed scan leaves the previous row alone.

Transferred orders (accepted or completed) split their total between the
originating and the fulfilling branch:

    order_share   = round_half_up(total * order_percent / 100)
    process_share = total - order_share

so the two shares always add up to the order total.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Set, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import ReconciliationError, ValidationError
from florist_ledger.core.sanitize import branch_key
from florist_ledger.core.timeutils import iter_days, local_day_bounds, parse_date, utcnow
from florist_ledger.models.daily_stat import DailyStat
from florist_ledger.models.order import Order, OrderStatus, OrderTransfer

logger = logging.getLogger(__name__)

DEFAULT_ORDER_BRANCH_PERCENT = 100


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_shares(amount: int, transfer: Optional[OrderTransfer]) -> Tuple[int, int]:
    """Split an order total into (order branch share, process branch share)."""
    if transfer is None or not transfer.splits_revenue:
        return amount, 0

    order_percent = transfer.order_branch_percent
    if order_percent is None:
        order_percent = DEFAULT_ORDER_BRANCH_PERCENT

    order_share = round_half_up(Decimal(amount) * Decimal(order_percent) / Decimal(100))
    return order_share, amount - order_share


@dataclass
class BranchTotals:
    branch_name: str
    revenue: int = 0
    settled_amount: int = 0
    order_count: int = 0

    def to_dict(self) -> dict:
        return {
            "branch_name": self.branch_name,
            "revenue": self.revenue,
            "settled_amount": self.settled_amount,
            "order_count": self.order_count,
        }


class RevenueReconciliationService:
    """Rebuilds DailyStat rows from the orders of a day."""

    def __init__(self, db: Session, tz: Optional[ZoneInfo | str] = None):
        self.db = db
        if tz is None:
            self.tz = settings.tzinfo
        elif isinstance(tz, str):
            self.tz = ZoneInfo(tz)
        else:
            self.tz = tz

    def reconcile(self, date_string: str) -> DailyStat:
        """Recompute and overwrite the daily stat for ``date_string`` (YYYY-MM-DD)."""
        day = parse_date(date_string)
        key = day.isoformat()
        logger.info(f"Reconciling daily stats for {key}")

        try:
            orders = self._orders_for_day(day)
            branches = self._accumulate(orders)

            stat = self.db.get(DailyStat, key)
            if stat is None:
                stat = DailyStat(date=key)
                self.db.add(stat)

            stat.total_revenue = sum(b.revenue for b in branches.values())
            stat.total_settled_amount = sum(b.settled_amount for b in branches.values())
            stat.total_order_count = sum(b.order_count for b in branches.values())
            stat.branches = {k: b.to_dict() for k, b in sorted(branches.items())}
            stat.last_updated = utcnow()
            stat.is_synced = True

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Reconciliation for {key} failed: {e}")
            raise ReconciliationError(key, e) from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(stat)
        logger.info(
            f"Daily stats {key}: revenue {stat.total_revenue}, settled {stat.total_settled_amount}, "
            f"{stat.total_order_count} orders over {len(stat.branches)} branches"
        )
        return stat

    def reconcile_range(self, start: str, end: str) -> List[DailyStat]:
        """Reconcile every date from ``start`` to ``end`` inclusive."""
        start_day = parse_date(start)
        end_day = parse_date(end)
        if start_day > end_day:
            raise ValidationError("Start date must not be after end date", field="start")
        return [self.reconcile(day.isoformat()) for day in iter_days(start_day, end_day)]

    def get_daily_stat(self, date_string: str) -> Optional[DailyStat]:
        key = parse_date(date_string).isoformat()
        return self.db.get(DailyStat, key)

    # ===== INTERNALS =====

    def _orders_for_day(self, day: date) -> List[Order]:
        start, end = local_day_bounds(day, self.tz)
        stmt = (
            select(Order)
            .options(selectinload(Order.transfer))
            .where(
                Order.order_date >= start,
                Order.order_date < end,
                Order.status != OrderStatus.CANCELED.value,
            )
            .order_by(Order.id)
        )
        return list(self.db.scalars(stmt).all())

    def _accumulate(self, orders: List[Order]) -> Dict[str, BranchTotals]:
        branches: Dict[str, BranchTotals] = {}
        merged: Set[Tuple[str, str]] = set()

        def totals_for(name: str) -> BranchTotals:
            key = branch_key(name)
            if key not in branches:
                branches[key] = BranchTotals(branch_name=name)
            elif branches[key].branch_name != name and (key, name) not in merged:
                merged.add((key, name))
                logger.warning(
                    f"Branch '{name}' shares the key '{key}' with '{branches[key].branch_name}'; "
                    f"their totals are merged"
                )
            return branches[key]

        for order in orders:
            amount = order.total or 0
            order_share, process_share = compute_shares(amount, order.transfer)

            origin = totals_for(order.branch_name)
            origin.revenue += order_share
            origin.order_count += 1
            if order.is_settled:
                origin.settled_amount += order_share

            transfer = order.transfer
            if transfer is None or not transfer.splits_revenue:
                continue
            if not transfer.process_branch_name:
                logger.warning(
                    f"Order {order.id} is transferred without a fulfilling branch; "
                    f"its {process_share} share is not attributed"
                )
                continue

            process = totals_for(transfer.process_branch_name)
            process.revenue += process_share
            if order.is_settled:
                process.settled_amount += process_share

        return branches
