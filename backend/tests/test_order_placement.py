"""Tests for order placement: per-line outcomes, failure policies, notifications."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from florist_ledger.core.exceptions import (
    ConcurrencyExhaustedError,
    InsufficientStockError,
    ItemNotFoundError,
    OrderPlacementError,
    ValidationError,
)
from florist_ledger.models.order import Order
from florist_ledger.models.stock import ChangeType, StockHistoryEntry, StockRow
from florist_ledger.services.order_placement_service import (
    Applied,
    Failed,
    OrderDraft,
    OrderLineDraft,
    OrderPlacementService,
    Skipped,
    TransferDraft,
)
from florist_ledger.services.stock_transaction_service import StockTransactionManager


def quantities(db_session) -> dict:
    db_session.expire_all()
    return {(r.item_id, r.branch_name): r.quantity for r in db_session.scalars(select(StockRow)).all()}


@pytest.fixture
def stocked(make_stock):
    make_stock("P1", "Gangnam", 10, name="Rose Bouquet", unit_price=30000)
    make_stock("P2", "Gangnam", 5, name="Tulip Basket", unit_price=45000)
    make_stock("P3", "Gangnam", 1, name="Orchid Pot", unit_price=80000)


def draft(*lines, **kwargs) -> OrderDraft:
    return OrderDraft(branch_name=kwargs.pop("branch_name", "Gangnam"), orderer_name="Lee", lines=list(lines), **kwargs)


class TestPlaceOrder:
    def test_all_lines_applied(self, db_session, stocked, operator, notifier):
        service = OrderPlacementService(db_session, notifier=notifier)
        order_date = datetime(2026, 1, 25, 3, 0, tzinfo=timezone.utc)

        placement = service.place_order(
            draft(
                OrderLineDraft(item_id="P1", name="Rose Bouquet", quantity=2, price=30000),
                OrderLineDraft(item_id="P2", name="Tulip Basket", quantity=1, price=45000),
                order_date=order_date,
            ),
            operator,
        )

        assert placement.succeeded
        assert all(isinstance(o, Applied) for o in placement.outcomes)
        assert quantities(db_session) == {("P1", "Gangnam"): 8, ("P2", "Gangnam"): 4, ("P3", "Gangnam"): 1}

        order = db_session.get(Order, placement.order_id)
        assert order.subtotal == 105000
        assert order.total == 105000
        assert order.status == "processing"
        assert order.created_by == "manager@lilymag.test"

        entries = db_session.scalars(select(StockHistoryEntry).order_by(StockHistoryEntry.id)).all()
        assert len(entries) == 2
        assert entries[0].ref_type == "order"
        assert entries[0].ref_id == order.id
        assert entries[0].unit_price == 30000
        assert entries[0].total_amount == 60000
        assert entries[0].operator == "manager@lilymag.test"
        assert entries[0].ts.replace(tzinfo=timezone.utc) == order_date

        assert [e.event for e in notifier.sent] == ["order_placed"]

    def test_unusable_lines_are_skipped_with_reason(self, db_session, stocked, operator, notifier):
        placement = OrderPlacementService(db_session, notifier=notifier).place_order(
            draft(
                OrderLineDraft(item_id="P1", name="Rose Bouquet", quantity=0),
                OrderLineDraft(item_id=None, name="Handwritten card", quantity=1, price=3000),
                OrderLineDraft(item_id="GONE", name="Discontinued", quantity=1),
                OrderLineDraft(item_id="P2", name="Tulip Basket", quantity=1),
            ),
            operator,
        )

        reasons = [getattr(o, "reason", None) for o in placement.outcomes]
        assert reasons == ["non_positive_quantity", "missing_item_id", "item_not_found", None]
        assert isinstance(placement.outcomes[3], Applied)
        assert placement.succeeded

    def test_missing_item_fails_under_fail_policy(self, db_session, stocked, operator, notifier):
        service = OrderPlacementService(db_session, notifier=notifier)
        with pytest.raises(OrderPlacementError) as exc_info:
            service.place_order(
                draft(
                    OrderLineDraft(item_id="P1", name="Rose Bouquet", quantity=1),
                    OrderLineDraft(item_id="GONE", name="Discontinued", quantity=1),
                ),
                operator,
                missing_item_policy="fail",
            )
        assert isinstance(exc_info.value.cause, ItemNotFoundError)
        assert quantities(db_session)[("P1", "Gangnam")] == 10

    def test_validation_happens_before_any_write(self, db_session, stocked, operator, notifier):
        service = OrderPlacementService(db_session, notifier=notifier)
        with pytest.raises(ValidationError):
            service.place_order(
                OrderDraft(branch_name="Gangnam", orderer_name=" ", lines=[OrderLineDraft(item_id="P1", name="Rose", quantity=1)]),
                operator,
            )
        with pytest.raises(ValidationError):
            service.place_order(draft(), operator)
        with pytest.raises(ValidationError):
            service.place_order(
                draft(
                    OrderLineDraft(item_id="P1", name="Rose", quantity=1),
                    transfer=TransferDraft(process_branch_name="Hongdae", order_branch_percent=60, process_branch_percent=30),
                ),
                operator,
            )
        assert db_session.scalars(select(Order)).first() is None
        assert db_session.scalars(select(StockHistoryEntry)).first() is None

    def test_transfer_saved_with_order(self, db_session, stocked, operator, notifier):
        placement = OrderPlacementService(db_session, notifier=notifier).place_order(
            draft(
                OrderLineDraft(item_id="P1", name="Rose", quantity=1, price=10000),
                transfer=TransferDraft(process_branch_name="Hongdae", order_branch_percent=70, process_branch_percent=30),
            ),
            operator,
        )
        order = db_session.get(Order, placement.order_id)
        assert order.transfer.status == "pending"
        assert order.transfer.process_branch_name == "Hongdae"
        assert order.transfer.requested_by == "manager@lilymag.test"


class TestPartialFailure:
    """A failing line after earlier lines were applied."""

    def lines(self):
        return (
            OrderLineDraft(item_id="P1", name="Rose Bouquet", quantity=3, price=30000),
            OrderLineDraft(item_id="P3", name="Orchid Pot", quantity=2, price=80000),
            OrderLineDraft(item_id="P2", name="Tulip Basket", quantity=1, price=45000),
        )

    def test_compensation_restores_applied_lines(self, db_session, stocked, operator, notifier):
        service = OrderPlacementService(db_session, notifier=notifier)

        with pytest.raises(OrderPlacementError) as exc_info:
            service.place_order(draft(*self.lines()), operator, compensate=True)

        err = exc_info.value
        assert err.compensated is True
        assert isinstance(err.cause, InsufficientStockError)
        assert "Orchid Pot" in str(err)
        assert "current stock 1" in str(err)
        assert [o.status for o in err.outcomes] == ["applied", "failed", "skipped"]
        assert isinstance(err.outcomes[1], Failed)
        assert isinstance(err.outcomes[2], Skipped) and err.outcomes[2].reason == "aborted"

        assert quantities(db_session) == {("P1", "Gangnam"): 10, ("P2", "Gangnam"): 5, ("P3", "Gangnam"): 1}
        order = db_session.get(Order, err.order_id)
        assert order.status == "canceled"

        entries = db_session.scalars(select(StockHistoryEntry).order_by(StockHistoryEntry.id)).all()
        assert [(e.change_type, e.ref_type, e.quantity_delta) for e in entries] == [
            ("out", "order", -3),
            ("in", "order_compensation", 3),
        ]
        assert [e.event for e in notifier.sent] == ["order_failed"]

    def test_keep_policy_leaves_partial_application(self, db_session, stocked, operator, notifier):
        service = OrderPlacementService(db_session, notifier=notifier)

        with pytest.raises(OrderPlacementError) as exc_info:
            service.place_order(draft(*self.lines()), operator, compensate=False)

        err = exc_info.value
        assert err.compensated is False
        assert quantities(db_session) == {("P1", "Gangnam"): 7, ("P2", "Gangnam"): 5, ("P3", "Gangnam"): 1}
        assert db_session.get(Order, err.order_id).status == "processing"

    def test_failed_reversal_does_not_stop_compensation(self, db_session, stocked, operator, notifier):
        class HotRowManager(StockTransactionManager):
            """Stock-in of P1 keeps losing the version race."""

            def apply_stock_change(self, item_id, branch_name, delta, change_type, metadata=None):
                if change_type == ChangeType.IN and item_id == "P1":
                    raise ConcurrencyExhaustedError(item_id, branch_name, 5)
                return super().apply_stock_change(item_id, branch_name, delta, change_type, metadata)

        service = OrderPlacementService(
            db_session, notifier=notifier, stock_manager=HotRowManager(db_session)
        )
        lines = (
            OrderLineDraft(item_id="P1", name="Rose Bouquet", quantity=2),
            OrderLineDraft(item_id="P2", name="Tulip Basket", quantity=3),
            OrderLineDraft(item_id="P3", name="Orchid Pot", quantity=2),
        )

        with pytest.raises(OrderPlacementError) as exc_info:
            service.place_order(draft(*lines), operator, compensate=True)

        err = exc_info.value
        assert isinstance(err.cause, InsufficientStockError)
        assert err.compensated is False
        assert [(f["item_id"], f["quantity"]) for f in err.reversal_failures] == [("P1", 2)]
        assert err.reversal_failures[0]["error"]["error"] == "concurrency_exhausted"
        assert err.to_dict()["reversal_failures"] == err.reversal_failures

        assert quantities(db_session) == {("P1", "Gangnam"): 8, ("P2", "Gangnam"): 5, ("P3", "Gangnam"): 1}
        assert db_session.get(Order, err.order_id).status == "canceled"
        assert [e.event for e in notifier.sent] == ["order_failed"]
        assert notifier.sent[0].payload["compensated"] is False

    def test_error_payload_lists_outcomes(self, db_session, stocked, operator, notifier):
        with pytest.raises(OrderPlacementError) as exc_info:
            OrderPlacementService(db_session, notifier=notifier).place_order(draft(*self.lines()), operator)
        payload = exc_info.value.to_dict()
        assert payload["error"] == "order_placement_failed"
        assert payload["cause"]["current_stock"] == 1
        assert [o["status"] for o in payload["outcomes"]] == ["applied", "failed", "skipped"]


class TestNotifier:
    def test_notifier_failure_does_not_fail_order(self, db_session, stocked, operator):
        class BrokenNotifier:
            def notify(self, event):
                raise RuntimeError("webhook down")

        placement = OrderPlacementService(db_session, notifier=BrokenNotifier()).place_order(
            draft(OrderLineDraft(item_id="P1", name="Rose", quantity=1)), operator
        )
        assert placement.succeeded
        assert quantities(db_session)[("P1", "Gangnam")] == 9
