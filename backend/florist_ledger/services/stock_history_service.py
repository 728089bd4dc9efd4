"""Stock history ledger: append contract and read-only query surface.

Entries are written only by the stock transaction manager, inside the same
database transaction as the stock row update they describe. Everything
else (history screen, exports, audits) reads through ``query``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import ValidationError
from florist_ledger.core.sanitize import LIKE_ESCAPE, contains_pattern
from florist_ledger.core.timeutils import as_utc, local_day_bounds, utcnow
from florist_ledger.models.stock import ChangeType, StockHistoryEntry, StockRow

logger = logging.getLogger(__name__)


@dataclass
class StockHistoryFilter:
    """Filters for the history screen. Dates are local calendar days."""

    date_from: Optional[date] = None
    date_to: Optional[date] = None
    branch: Optional[str] = None
    item_type: Optional[str] = None
    change_type: Optional[str] = None
    search: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None


class StockHistoryService:
    """Append-only access to ``stock_history``."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        row: StockRow,
        change_type: ChangeType,
        from_stock: int,
        to_stock: int,
        operator: str,
        ts: Optional[datetime] = None,
        unit_price: Optional[int] = None,
        supplier: Optional[str] = None,
        total_amount: Optional[int] = None,
        ref_type: Optional[str] = None,
        ref_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> StockHistoryEntry:
        """Add one ledger entry for a committed-together stock row change.

        The caller owns the transaction: the entry is added to the session
        and becomes durable with the caller's commit, or not at all.
        """
        delta = to_stock - from_stock
        if change_type == ChangeType.MANUAL_UPDATE:
            shown_quantity = delta
        else:
            shown_quantity = abs(delta)

        entry = StockHistoryEntry(
            ts=as_utc(ts) or utcnow(),
            change_type=change_type.value,
            item_type=row.item_type,
            item_id=row.item_id,
            item_name=row.name,
            quantity=shown_quantity,
            quantity_delta=delta,
            from_stock=from_stock,
            to_stock=to_stock,
            resulting_stock=to_stock,
            branch=row.branch_name,
            operator=operator,
            unit_price=unit_price,
            supplier=supplier,
            total_amount=total_amount,
            ref_type=ref_type,
            ref_id=ref_id,
            notes=notes,
        )
        self.db.add(entry)
        return entry

    def query(
        self,
        filters: Optional[StockHistoryFilter] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[StockHistoryEntry], int]:
        """Return a page of entries (newest first) and the total match count."""
        filters = filters or StockHistoryFilter()
        if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
            raise ValidationError("date_from must not be after date_to", field="date_from")

        conditions = []
        tz = settings.tzinfo
        if filters.date_from:
            start, _ = local_day_bounds(filters.date_from, tz)
            conditions.append(StockHistoryEntry.ts >= start)
        if filters.date_to:
            _, end = local_day_bounds(filters.date_to, tz)
            conditions.append(StockHistoryEntry.ts < end)
        if filters.branch and filters.branch != "all":
            conditions.append(StockHistoryEntry.branch == filters.branch)
        if filters.item_type and filters.item_type != "all":
            conditions.append(StockHistoryEntry.item_type == filters.item_type)
        if filters.change_type and filters.change_type != "all":
            conditions.append(StockHistoryEntry.change_type == filters.change_type)
        if filters.search:
            conditions.append(
                func.lower(StockHistoryEntry.item_name).like(contains_pattern(filters.search), escape=LIKE_ESCAPE)
            )
        if filters.ref_type:
            conditions.append(StockHistoryEntry.ref_type == filters.ref_type)
        if filters.ref_id is not None:
            conditions.append(StockHistoryEntry.ref_id == filters.ref_id)

        total = self.db.scalar(
            select(func.count(StockHistoryEntry.id)).where(*conditions)
        ) or 0

        stmt = (
            select(StockHistoryEntry)
            .where(*conditions)
            .order_by(StockHistoryEntry.ts.desc(), StockHistoryEntry.id.desc())
            .offset(skip)
            .limit(limit)
        )
        entries = list(self.db.scalars(stmt).all())
        return entries, total
