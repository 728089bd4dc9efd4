"""Tests for the order stock audit (half-applied order detection)."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from florist_ledger.core.exceptions import OrderPlacementError, ValidationError
from florist_ledger.services.order_placement_service import OrderDraft, OrderLineDraft, OrderPlacementService
from florist_ledger.services.order_stock_audit_service import AuditStatus, OrderStockAuditService
from florist_ledger.services.stock_transaction_service import StockChangeMetadata, StockTransactionManager

SEOUL = ZoneInfo("Asia/Seoul")
DAY = date(2026, 2, 14)
ORDER_DATE = datetime(2026, 2, 14, 10, tzinfo=SEOUL)


@pytest.fixture
def stocked(make_stock):
    make_stock("P1", "Gangnam", 10, name="Rose Bouquet")
    make_stock("P2", "Gangnam", 1, name="Orchid Pot")


def place(db_session, operator, notifier, *lines, compensate=True):
    service = OrderPlacementService(db_session, notifier=notifier)
    draft = OrderDraft(branch_name="Gangnam", orderer_name="Park", lines=list(lines), order_date=ORDER_DATE)
    try:
        return service.place_order(draft, operator, compensate=compensate).order_id
    except OrderPlacementError as e:
        return e.order_id


def audit_for(db_session, order_id):
    audits = OrderStockAuditService(db_session).audit_orders(DAY, DAY)
    return next(a for a in audits if a.order_id == order_id)


class TestOrderStockAudit:
    def test_fully_applied_order_is_ok(self, db_session, stocked, operator, notifier):
        order_id = place(db_session, operator, notifier, OrderLineDraft(item_id="P1", name="Rose", quantity=2))
        audit = audit_for(db_session, order_id)
        assert audit.status == AuditStatus.OK
        assert audit.items[0].decremented == 2

    def test_kept_partial_failure_is_partial(self, db_session, stocked, operator, notifier):
        order_id = place(
            db_session, operator, notifier,
            OrderLineDraft(item_id="P1", name="Rose", quantity=2),
            OrderLineDraft(item_id="P2", name="Orchid", quantity=5),
            compensate=False,
        )
        audit = audit_for(db_session, order_id)
        assert audit.status == AuditStatus.PARTIAL
        outstanding = {i.item_id: i.outstanding for i in audit.items}
        assert outstanding == {"P1": 0, "P2": 5}

    def test_compensated_order_nets_to_zero(self, db_session, stocked, operator, notifier):
        order_id = place(
            db_session, operator, notifier,
            OrderLineDraft(item_id="P1", name="Rose", quantity=2),
            OrderLineDraft(item_id="P2", name="Orchid", quantity=5),
            compensate=True,
        )
        audit = audit_for(db_session, order_id)
        assert audit.order_status == "canceled"
        assert audit.status == AuditStatus.OK

    def test_nothing_applied_is_missing(self, db_session, stocked, operator, notifier):
        order_id = place(db_session, operator, notifier, OrderLineDraft(item_id="P2", name="Orchid", quantity=5), compensate=False)
        assert audit_for(db_session, order_id).status == AuditStatus.MISSING

    def test_double_decrement_is_over(self, db_session, stocked, operator, notifier):
        order_id = place(db_session, operator, notifier, OrderLineDraft(item_id="P1", name="Rose", quantity=1))
        StockTransactionManager(db_session).apply_stock_change(
            "P1", "Gangnam", -1, "out", StockChangeMetadata(ref_type="order", ref_id=order_id)
        )
        assert audit_for(db_session, order_id).status == AuditStatus.OVER

    def test_only_problems_filter(self, db_session, stocked, operator, notifier):
        place(db_session, operator, notifier, OrderLineDraft(item_id="P1", name="Rose", quantity=1))
        bad = place(db_session, operator, notifier, OrderLineDraft(item_id="P2", name="Orchid", quantity=5), compensate=False)

        audits = OrderStockAuditService(db_session).audit_orders(DAY, DAY, only_problems=True)
        assert [a.order_id for a in audits] == [bad]

    def test_inverted_range(self, db_session):
        with pytest.raises(ValidationError):
            OrderStockAuditService(db_session).audit_orders(date(2026, 2, 15), DAY)
