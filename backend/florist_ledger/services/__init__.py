# Services module

from florist_ledger.services.stock_history_service import StockHistoryFilter, StockHistoryService
from florist_ledger.services.stock_transaction_service import (
    StockChangeMetadata,
    StockChangeResult,
    StockTransactionManager,
)
from florist_ledger.services.stock_adjustment_service import (
    StockAdjustmentService,
    StockMovementItem,
    StockMovementOutcome,
)
from florist_ledger.services.order_placement_service import (
    OrderDraft,
    OrderLineDraft,
    OrderPlacement,
    OrderPlacementService,
    TransferDraft,
)
from florist_ledger.services.order_transfer_service import OrderTransferService
from florist_ledger.services.revenue_reconciliation_service import (
    RevenueReconciliationService,
    compute_shares,
)
from florist_ledger.services.order_stock_audit_service import OrderStockAuditService
