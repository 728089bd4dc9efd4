"""Stock models: StockRow and StockHistoryEntry."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from florist_ledger.core.exceptions import LedgerImmutableError
from florist_ledger.core.timeutils import utcnow
from florist_ledger.db.base import Base, TimestampMixin
from florist_ledger.models.validators import non_negative


class ItemType(str, Enum):
    """Kind of stocked item."""

    PRODUCT = "product"  # Finished goods sold on orders (bouquets, plants)
    MATERIAL = "material"  # Consumables (ribbon, wrapping, oasis)


class ChangeType(str, Enum):
    """Kind of stock mutation recorded in the ledger."""

    IN = "in"  # Goods received
    OUT = "out"  # Sold or consumed
    MANUAL_UPDATE = "manual_update"  # Physical-count correction to an absolute value


class StockRow(Base, TimestampMixin):
    """Current quantity of one item at one branch.

    The same ``item_id`` has an independent row per branch. Rows are mutated
    only through the stock transaction manager; ``version`` is bumped on
    every committed update and guards against lost updates.
    """

    __tablename__ = "stock_rows"
    __table_args__ = (
        UniqueConstraint("item_id", "branch_name", name="uq_stock_item_branch"),
        CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    item_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    branch_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False, default=ItemType.PRODUCT.value)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    supplier: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    main_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    mid_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return non_negative(key, value)

    def __repr__(self) -> str:
        return f"<StockRow {self.item_id}@{self.branch_name} qty={self.quantity} v{self.version}>"


class StockHistoryEntry(Base):
    """Append-only journal of stock mutations (single source of truth for audits).

    One entry per (item, transaction). ``quantity`` is what the history
    screen shows: the moved amount for in/out, the signed correction for
    manual updates. ``quantity_delta`` is always signed.
    """

    __tablename__ = "stock_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    change_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    item_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    from_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    to_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    resulting_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    branch: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    operator: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    supplier: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    total_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ref_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # order, order_compensation, manual
    ref_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.ts.isoformat() if self.ts else None,
            "type": self.change_type,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "quantity_delta": self.quantity_delta,
            "from_stock": self.from_stock,
            "to_stock": self.to_stock,
            "resulting_stock": self.resulting_stock,
            "branch": self.branch,
            "operator": self.operator,
            "unit_price": self.unit_price,
            "supplier": self.supplier,
            "total_amount": self.total_amount,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "notes": self.notes,
        }


@event.listens_for(StockHistoryEntry, "before_update")
def _reject_history_update(mapper, connection, target):
    raise LedgerImmutableError(f"Stock history entry {target.id} cannot be modified")


@event.listens_for(StockHistoryEntry, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Stock history entry {target.id} cannot be deleted")
