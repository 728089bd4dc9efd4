"""Stock Transaction Manager - one item's stock change plus its ledger entry.

Every stock mutation in the system goes through this module:

1. Read the current stock row for (item_id, branch_name)
2. Compute the new quantity and reject it if it would go negative
3. Update the row and append exactly one StockHistoryEntry
4. Commit both in one database transaction

Concurrency is optimistic: ``StockRow.version`` is the mapper's
``version_id_col``, so the UPDATE only matches if nobody committed since our
read. A lost race surfaces as ``StaleDataError`` at commit; the whole
read-compute-write unit is rolled back and retried from a fresh read, up to
``max_retries`` attempts.

There is no cross-item atomicity. Callers touching several items (orders,
bulk stock-in) get one independent unit per item.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import (
    ConcurrencyExhaustedError,
    InsufficientStockError,
    ItemNotFoundError,
    ValidationError,
)
from florist_ledger.core.timeutils import utcnow
from florist_ledger.models.stock import ChangeType, ItemType, StockRow
from florist_ledger.services.stock_history_service import StockHistoryService

logger = logging.getLogger(__name__)


@dataclass
class StockChangeMetadata:
    """Ledger attribution and creation details for a stock change."""

    operator: str = "system"
    ts: Optional[datetime] = None  # ledger timestamp, defaults to now
    unit_price: Optional[int] = None
    supplier: Optional[str] = None
    total_amount: Optional[int] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    notes: Optional[str] = None
    # Used only when a stock-in creates the row
    create_missing: bool = False
    item_name: Optional[str] = None
    item_type: str = ItemType.PRODUCT.value


@dataclass
class StockChangeResult:
    """Committed values of one stock change."""

    item_id: str
    branch_name: str
    item_name: str
    change_type: str
    from_stock: int
    to_stock: int
    entry_id: Optional[int] = None
    attempts: int = 1
    created: bool = False

    @property
    def delta(self) -> int:
        return self.to_stock - self.from_stock

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "branch_name": self.branch_name,
            "item_name": self.item_name,
            "type": self.change_type,
            "from_stock": self.from_stock,
            "to_stock": self.to_stock,
            "delta": self.delta,
            "entry_id": self.entry_id,
            "attempts": self.attempts,
        }


class StockTransactionManager:
    """Applies single-item stock changes atomically with their ledger entry."""

    def __init__(
        self,
        db: Session,
        max_retries: Optional[int] = None,
        history: Optional[StockHistoryService] = None,
    ):
        self.db = db
        self.max_retries = max_retries or settings.stock_max_retries
        self.history = history or StockHistoryService(db)

    # ===== PUBLIC API =====

    def apply_stock_change(
        self,
        item_id: str,
        branch_name: str,
        delta: int,
        change_type: ChangeType | str,
        metadata: Optional[StockChangeMetadata] = None,
    ) -> StockChangeResult:
        """Add ``delta`` to the row's quantity and ledger it.

        ``in`` changes take a non-negative delta, ``out`` changes a
        non-positive one. Raises InsufficientStockError if the result would
        be negative, ItemNotFoundError if the row does not exist (unless a
        stock-in asks to create it) and ConcurrencyExhaustedError when the
        retry budget runs out.
        """
        change_type = ChangeType(change_type)
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise ValidationError(f"Stock delta must be an integer, got {delta!r}", field="delta")
        if change_type == ChangeType.IN and delta < 0:
            raise ValidationError("Stock-in delta must not be negative", field="delta")
        if change_type == ChangeType.OUT and delta > 0:
            raise ValidationError("Stock-out delta must not be positive", field="delta")

        return self._run(item_id, branch_name, change_type, lambda current: delta, metadata)

    def set_stock_level(
        self,
        item_id: str,
        branch_name: str,
        new_quantity: int,
        metadata: Optional[StockChangeMetadata] = None,
    ) -> StockChangeResult:
        """Set the row to an absolute quantity as a ``manual_update``.

        The delta is computed against the value read inside the same
        attempt, so a concurrent change is never silently overwritten with a
        stale delta.
        """
        if not isinstance(new_quantity, int) or isinstance(new_quantity, bool) or new_quantity < 0:
            raise ValidationError(
                f"New quantity must be a non-negative integer, got {new_quantity!r}",
                field="new_quantity",
            )
        return self._run(
            item_id,
            branch_name,
            ChangeType.MANUAL_UPDATE,
            lambda current: new_quantity - current,
            metadata,
        )

    def register_item(
        self,
        item_id: str,
        branch_name: str,
        name: str,
        item_type: str = ItemType.PRODUCT.value,
        unit_price: Optional[int] = None,
        supplier: Optional[str] = None,
        main_category: Optional[str] = None,
        mid_category: Optional[str] = None,
    ) -> StockRow:
        """Catalog add: create the row at quantity 0, or return the existing one."""
        item_id, branch_name = self._check_identity(item_id, branch_name)
        if not name or not name.strip():
            raise ValidationError("Item name is required", field="name")
        item_type = ItemType(item_type).value

        existing = self._load_row(item_id, branch_name)
        if existing is not None:
            return existing

        row = StockRow(
            item_id=item_id,
            branch_name=branch_name,
            item_type=item_type,
            name=name.strip(),
            quantity=0,
            unit_price=unit_price,
            supplier=supplier,
            main_category=main_category,
            mid_category=mid_category,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            # Registered concurrently by someone else
            self.db.rollback()
            existing = self._load_row(item_id, branch_name)
            if existing is None:
                raise
            return existing

        logger.info(f"Registered {item_type} '{row.name}' ({item_id}) at {branch_name}")
        return row

    def get_row(self, item_id: str, branch_name: str) -> StockRow:
        """Fetch the current row or raise ItemNotFoundError."""
        row = self._load_row(item_id, branch_name)
        if row is None:
            raise ItemNotFoundError(item_id, branch_name)
        return row

    # ===== TRANSACTION UNIT =====

    def _run(
        self,
        item_id: str,
        branch_name: str,
        change_type: ChangeType,
        compute_delta: Callable[[int], int],
        metadata: Optional[StockChangeMetadata],
    ) -> StockChangeResult:
        item_id, branch_name = self._check_identity(item_id, branch_name)
        meta = metadata or StockChangeMetadata()

        attempts = 0
        while attempts < self.max_retries:
            attempts += 1
            try:
                result, entry = self._attempt(item_id, branch_name, change_type, compute_delta, meta)
                self.db.commit()
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    f"Write conflict on {item_id}@{branch_name} "
                    f"(attempt {attempts}/{self.max_retries}), retrying"
                )
                continue
            except IntegrityError:
                self.db.rollback()
                if not (change_type == ChangeType.IN and meta.create_missing):
                    raise
                logger.warning(
                    f"Concurrent create of {item_id}@{branch_name} "
                    f"(attempt {attempts}/{self.max_retries}), retrying"
                )
                continue
            except Exception:
                self.db.rollback()
                raise

            result.entry_id = entry.id
            result.attempts = attempts
            logger.info(
                f"Stock {change_type.value}: {result.item_name} ({item_id}) at {branch_name} "
                f"{result.from_stock} -> {result.to_stock} by {meta.operator}"
            )
            return result

        logger.error(f"Giving up on {item_id}@{branch_name} after {attempts} conflicting attempts")
        raise ConcurrencyExhaustedError(item_id, branch_name, attempts)

    def _attempt(
        self,
        item_id: str,
        branch_name: str,
        change_type: ChangeType,
        compute_delta: Callable[[int], int],
        meta: StockChangeMetadata,
    ):
        """One read-compute-write pass. The caller commits or rolls back."""
        row = self._load_row(item_id, branch_name)
        created = False
        if row is None:
            if not (change_type == ChangeType.IN and meta.create_missing):
                raise ItemNotFoundError(item_id, branch_name)
            row = StockRow(
                item_id=item_id,
                branch_name=branch_name,
                item_type=ItemType(meta.item_type).value,
                name=(meta.item_name or item_id).strip(),
                quantity=0,
                unit_price=meta.unit_price,
                supplier=meta.supplier,
            )
            self.db.add(row)
            created = True

        from_stock = row.quantity or 0
        delta = compute_delta(from_stock)
        to_stock = from_stock + delta

        if to_stock < 0:
            raise InsufficientStockError(
                item_name=row.name,
                current_stock=from_stock,
                requested=-delta,
                item_id=item_id,
                branch_name=branch_name,
            )

        row.quantity = to_stock
        if change_type == ChangeType.MANUAL_UPDATE and delta == 0:
            # A zero correction still goes through the version check
            row.updated_at = utcnow()

        entry = self.history.append(
            row=row,
            change_type=change_type,
            from_stock=from_stock,
            to_stock=to_stock,
            operator=meta.operator,
            ts=meta.ts,
            unit_price=meta.unit_price,
            supplier=meta.supplier,
            total_amount=meta.total_amount,
            ref_type=meta.ref_type,
            ref_id=meta.ref_id,
            notes=meta.notes,
        )

        result = StockChangeResult(
            item_id=item_id,
            branch_name=branch_name,
            item_name=row.name,
            change_type=change_type.value,
            from_stock=from_stock,
            to_stock=to_stock,
            created=created,
        )
        return result, entry

    def _load_row(self, item_id: str, branch_name: str) -> Optional[StockRow]:
        """Read the row fresh from the database, bypassing identity-map state."""
        stmt = (
            select(StockRow)
            .where(StockRow.item_id == item_id, StockRow.branch_name == branch_name)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _check_identity(item_id: str, branch_name: str):
        if not item_id or not str(item_id).strip():
            raise ValidationError("Item id is required", field="item_id")
        if not branch_name or not str(branch_name).strip():
            raise ValidationError("Branch name is required", field="branch_name")
        return str(item_id).strip(), str(branch_name).strip()


def get_stock_transaction_manager(db: Session) -> StockTransactionManager:
    """Factory function to get the stock transaction manager."""
    return StockTransactionManager(db)
