"""SQLAlchemy models."""

from florist_ledger.models.branch import Branch
from florist_ledger.models.stock import (
    StockRow,
    StockHistoryEntry,
    ItemType,
    ChangeType,
)
from florist_ledger.models.order import (
    Order,
    OrderLine,
    OrderTransfer,
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    TransferStatus,
)
from florist_ledger.models.daily_stat import DailyStat

__all__ = [
    "Branch",
    "StockRow",
    "StockHistoryEntry",
    "ItemType",
    "ChangeType",
    "Order",
    "OrderLine",
    "OrderTransfer",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "TransferStatus",
    "DailyStat",
]
