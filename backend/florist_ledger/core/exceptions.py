"""Error taxonomy for stock, order and reconciliation operations.

Every error carries enough structured detail for the caller to render a
precise message (item name, current stock, branch). ``to_dict()`` gives the
JSON-ready form used by the API layer.
"""

from typing import Any, Dict, List, Optional


class LedgerError(Exception):
    """Base class for all ledger engine errors."""

    code = "ledger_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class ValidationError(LedgerError):
    """Missing or invalid input; raised before any write."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class ItemNotFoundError(LedgerError):
    """No stock row exists for the item at the branch."""

    code = "item_not_found"

    def __init__(self, item_id: str, branch_name: str):
        self.item_id = item_id
        self.branch_name = branch_name
        super().__init__(f"Item '{item_id}' not found at branch '{branch_name}'")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"item_id": self.item_id, "branch_name": self.branch_name})
        return data


class InsufficientStockError(LedgerError):
    """Raised when a decrement would drive a stock row below zero."""

    code = "insufficient_stock"

    def __init__(
        self,
        item_name: str,
        current_stock: int,
        requested: int,
        item_id: Optional[str] = None,
        branch_name: Optional[str] = None,
    ):
        self.item_name = item_name
        self.current_stock = current_stock
        self.requested = requested
        self.item_id = item_id
        self.branch_name = branch_name
        super().__init__(
            f"Insufficient stock for '{item_name}': requested {requested}, "
            f"current stock {current_stock}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "item_name": self.item_name,
            "item_id": self.item_id,
            "branch_name": self.branch_name,
            "current_stock": self.current_stock,
            "requested": self.requested,
        })
        return data


class ConcurrencyExhaustedError(LedgerError):
    """Optimistic retry budget exceeded on a hot stock row.

    Transient: the whole operation is safe to retry from scratch.
    """

    code = "concurrency_exhausted"

    def __init__(self, item_id: str, branch_name: str, attempts: int):
        self.item_id = item_id
        self.branch_name = branch_name
        self.attempts = attempts
        super().__init__(
            f"Stock row '{item_id}' at '{branch_name}' kept changing; "
            f"gave up after {attempts} attempts"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "item_id": self.item_id,
            "branch_name": self.branch_name,
            "attempts": self.attempts,
        })
        return data


class OrderPlacementError(LedgerError):
    """An order line failed after the order record was persisted.

    ``outcomes`` holds the per-line result list; ``compensated`` tells whether
    lines applied before the failure were restored. ``reversal_failures``
    lists the restoring stock-in changes that could not be written.
    """

    code = "order_placement_failed"

    def __init__(
        self,
        order_id: int,
        outcomes: List[Any],
        cause: LedgerError,
        compensated: bool,
        reversal_failures: Optional[List[Dict[str, Any]]] = None,
    ):
        self.order_id = order_id
        self.outcomes = outcomes
        self.cause = cause
        self.compensated = compensated
        self.reversal_failures = reversal_failures or []
        super().__init__(str(cause))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": str(self),
            "order_id": self.order_id,
            "compensated": self.compensated,
            "reversal_failures": self.reversal_failures,
            "cause": self.cause.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class ReconciliationError(LedgerError):
    """The reconciliation scan failed; no daily stat was written."""

    code = "reconciliation_failed"

    def __init__(self, date: str, cause: Exception):
        self.date = date
        self.cause = cause
        super().__init__(f"Reconciliation for {date} failed: {cause}")


class InvalidTransitionError(LedgerError):
    """Transfer status change not allowed from the current status."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move transfer from '{current}' to '{target}'")


class LedgerImmutableError(LedgerError):
    """Stock history entries cannot be updated or deleted."""

    code = "ledger_immutable"


class OrderNotFoundError(LedgerError):
    code = "order_not_found"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")
