# Overview: Pytest coverage for POS shift open/summary/close and the transaction recorder.

"""
Shift lifecycle tests.

Covers one-open-shift-per-scope, summary aggregation by payment method,
close-time reconciliation with variance notes, the OPEN -> CLOSED terminal
transition and the transaction recorder that feeds summaries.
"""

import pytest

from kasir.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from kasir.models import PosTransaction, ShiftSession
from kasir.services import shift_service, transaction_recorder
from kasir.services.transaction_recorder import SaleRecord

from conftest import COMPANY_A, COMPANY_B


def _open(cashier_id="cashier-1", register_id="REG-01", opening_cash=500000, company_id=COMPANY_A):
    return shift_service.open_shift(company_id, cashier_id, register_id, opening_cash)


def _sell(shift, method, total, company_id=COMPANY_A):
    return transaction_recorder.record_transaction(company_id, shift.id, shift.cashier_id, method, total)


class TestOpenShift:

    def test_open_shift(self, db_session):
        shift = _open()

        assert shift.id is not None
        assert shift.status == "OPEN"
        assert shift.opening_cash == 500000
        assert shift.closed_at is None

    def test_second_open_for_same_scope_conflicts(self, db_session):
        first = _open()

        with pytest.raises(ConflictError):
            _open(opening_cash=1000)

        assert db_session.query(ShiftSession).filter_by(status="OPEN").count() == 1
        assert shift_service.get_open_shift(COMPANY_A, "cashier-1").id == first.id

    def test_other_register_or_cashier_may_open(self, db_session):
        _open()
        _open(register_id="REG-02")
        _open(cashier_id="cashier-2")
        _open(company_id=COMPANY_B)

        assert db_session.query(ShiftSession).filter_by(status="OPEN").count() == 4

    def test_reopen_after_close(self, db_session):
        first = _open()
        shift_service.close_shift(COMPANY_A, first.id, 500000)

        second = _open()
        assert second.id != first.id

    def test_zero_opening_cash_allowed(self, db_session):
        assert _open(opening_cash=0).opening_cash == 0

    @pytest.mark.parametrize("opening_cash", [-1, 1.5, "abc", None])
    def test_invalid_opening_cash(self, db_session, opening_cash):
        with pytest.raises(ValidationError) as exc_info:
            _open(opening_cash=opening_cash)
        assert exc_info.value.field == "opening_cash"
        assert db_session.query(ShiftSession).count() == 0


class TestSummary:

    def test_summary_groups_by_payment_method(self, db_session):
        shift = _open()
        _sell(shift, "cash", 100000)
        _sell(shift, "cash", 50000)
        _sell(shift, "card", 75000)
        _sell(shift, "transfer", 20000)
        _sell(shift, "e-wallet", 30000)
        _sell(shift, "split", 10000)

        summary = shift_service.get_summary(COMPANY_A, shift.id)

        assert summary.total_transactions == 6
        assert summary.cash_sales == 150000
        assert summary.card_sales == 75000
        assert summary.transfer_sales == 20000
        assert summary.other_sales == 40000
        assert summary.total_sales == 285000
        assert summary.expected_cash == 650000
        assert summary.sales_by_method["e-wallet"] == 30000

    def test_empty_shift(self, db_session):
        shift = _open()
        summary = shift_service.get_summary(COMPANY_A, shift.id)

        assert summary.total_transactions == 0
        assert summary.total_sales == 0
        assert summary.expected_cash == 500000
        assert summary.actual_cash is None

    def test_cancelled_and_refunded_sales_excluded(self, db_session):
        shift = _open()
        _sell(shift, "cash", 100000)
        cancelled = _sell(shift, "cash", 40000)
        refunded = _sell(shift, "card", 25000)

        transaction_recorder.cancel_transaction(COMPANY_A, cancelled.id)
        transaction_recorder.refund_transaction(COMPANY_A, refunded.id)

        summary = shift_service.get_summary(COMPANY_A, shift.id)
        assert summary.total_transactions == 1
        assert summary.expected_cash == 600000
        assert summary.card_sales == 0

    def test_injected_sales_feed(self, db_session):
        shift = _open(opening_cash=1000)
        calls = []

        def feed(company_id, shift_id):
            calls.append((company_id, shift_id))
            return [SaleRecord("cash", 200), SaleRecord("credit", 300)]

        summary = shift_service.get_summary(COMPANY_A, shift.id, sales_feed=feed)

        assert calls == [(COMPANY_A, shift.id)]
        assert summary.expected_cash == 1200
        assert summary.other_sales == 300
        assert summary.total_sales == 500

    def test_summary_to_dict(self, db_session):
        shift = _open()
        data = shift_service.get_summary(COMPANY_A, shift.id).to_dict()
        assert data["shift_id"] == shift.id
        assert data["status"] == "OPEN"
        assert data["opened_at"].endswith("Z")
        assert data["closed_at"] is None
        assert data["closing_cash"] is None

    def test_summary_other_company_not_found(self, db_session):
        shift = _open()
        with pytest.raises(NotFoundError):
            shift_service.get_summary(COMPANY_B, shift.id)


class TestCloseShift:

    def test_end_to_end_balanced_close(self, db_session):
        shift = _open(opening_cash=500000)
        for _ in range(3):
            _sell(shift, "cash", 100000)

        assert shift_service.get_summary(COMPANY_A, shift.id).expected_cash == 800000

        closed = shift_service.close_shift(COMPANY_A, shift.id, 800000)

        assert closed.status == "CLOSED"
        assert closed.closing_cash == 800000
        assert closed.actual_cash == 800000
        assert closed.variance == 0
        assert closed.notes is None
        assert closed.closed_at is not None
        assert closed.closed_by == "cashier-1"

    def test_shortage_requires_notes(self, db_session):
        shift = _open()
        _sell(shift, "cash", 300000)

        with pytest.raises(ValidationError) as exc_info:
            shift_service.close_shift(COMPANY_A, shift.id, 795000)
        assert exc_info.value.field == "notes"
        assert shift_service.get_shift(COMPANY_A, shift.id).status == "OPEN"

        closed = shift_service.close_shift(COMPANY_A, shift.id, 795000, "Short 5000, change error")
        assert closed.variance == -5000
        assert closed.notes == "Short 5000, change error"

    def test_surplus_requires_notes(self, db_session):
        shift = _open()
        with pytest.raises(ValidationError):
            shift_service.close_shift(COMPANY_A, shift.id, 510000, "   ")

        closed = shift_service.close_shift(COMPANY_A, shift.id, 510000, "Customer left change")
        assert closed.variance == 10000

    def test_zero_count_is_a_valid_close(self, db_session):
        shift = _open(opening_cash=0)
        closed = shift_service.close_shift(COMPANY_A, shift.id, 0)
        assert closed.variance == 0
        assert closed.actual_cash == 0

    def test_double_close_is_invalid_state(self, db_session):
        shift = _open()
        shift_service.close_shift(COMPANY_A, shift.id, 500000)

        with pytest.raises(InvalidStateError):
            shift_service.close_shift(COMPANY_A, shift.id, 1, "second attempt")

        reloaded = shift_service.get_shift(COMPANY_A, shift.id)
        assert reloaded.actual_cash == 500000
        assert reloaded.notes is None

    def test_close_records_closer(self, db_session):
        shift = _open()
        closed = shift_service.close_shift(COMPANY_A, shift.id, 500000, closed_by="supervisor-1")
        assert closed.closed_by == "supervisor-1"

    def test_close_other_company_not_found(self, db_session):
        shift = _open()
        with pytest.raises(NotFoundError):
            shift_service.close_shift(COMPANY_B, shift.id, 500000)
        assert shift_service.get_shift(COMPANY_A, shift.id).status == "OPEN"

    def test_close_unknown_shift(self, db_session):
        with pytest.raises(NotFoundError):
            shift_service.close_shift(COMPANY_A, 99999, 0)

    def test_negative_actual_cash_rejected(self, db_session):
        shift = _open()
        with pytest.raises(ValidationError):
            shift_service.close_shift(COMPANY_A, shift.id, -1, "negative")

    def test_close_uses_injected_feed(self, db_session):
        shift = _open(opening_cash=1000)

        closed = shift_service.close_shift(
            COMPANY_A, shift.id, 1500,
            sales_feed=lambda company_id, shift_id: [SaleRecord("cash", 500)],
        )
        assert closed.closing_cash == 1500
        assert closed.variance == 0

    def test_summary_after_close_carries_count(self, db_session):
        shift = _open()
        _sell(shift, "cash", 1000)
        shift_service.close_shift(COMPANY_A, shift.id, 500500, "Short 500")

        summary = shift_service.get_summary(COMPANY_A, shift.id)
        assert summary.status == "CLOSED"
        assert summary.closing_cash == 501000
        assert summary.to_dict()["closing_cash"] == 501000
        assert summary.actual_cash == 500500
        assert summary.variance == -500
        assert summary.closed_at is not None


class TestTransactionRecorder:

    def test_transaction_numbers_are_sequential(self, db_session):
        shift = _open()
        first = _sell(shift, "cash", 1000)
        second = _sell(shift, "card", 2000)

        assert first.transaction_number.startswith("POS-")
        assert first.transaction_number.endswith("-0001")
        assert second.transaction_number.endswith("-0002")
        assert first.payment_status == "paid"

    def test_cannot_sell_on_closed_shift(self, db_session):
        shift = _open()
        shift_service.close_shift(COMPANY_A, shift.id, 500000)

        with pytest.raises(InvalidStateError):
            _sell(shift, "cash", 1000)
        assert db_session.query(PosTransaction).count() == 0

    def test_unknown_payment_method(self, db_session):
        shift = _open()
        with pytest.raises(ValidationError) as exc_info:
            _sell(shift, "bitcoin", 1000)
        assert exc_info.value.field == "payment_method"

    def test_payment_method_normalized(self, db_session):
        shift = _open()
        tx = _sell(shift, " CASH ", 1000)
        assert tx.payment_method == "cash"

    def test_cancel_twice_is_invalid_state(self, db_session):
        shift = _open()
        tx = _sell(shift, "cash", 1000)
        transaction_recorder.cancel_transaction(COMPANY_A, tx.id)

        with pytest.raises(InvalidStateError):
            transaction_recorder.refund_transaction(COMPANY_A, tx.id)

    def test_cancel_other_company_not_found(self, db_session):
        shift = _open()
        tx = _sell(shift, "cash", 1000)
        with pytest.raises(NotFoundError):
            transaction_recorder.cancel_transaction(COMPANY_B, tx.id)

    def test_sell_on_other_company_shift_not_found(self, db_session):
        shift = _open()
        with pytest.raises(NotFoundError):
            _sell(shift, "cash", 1000, company_id=COMPANY_B)


class TestQueries:

    def test_list_shifts_filters(self, db_session):
        first = _open()
        shift_service.close_shift(COMPANY_A, first.id, 500000)
        _open()
        _open(cashier_id="cashier-2")
        _open(company_id=COMPANY_B)

        assert len(shift_service.list_shifts(COMPANY_A)) == 3
        assert len(shift_service.list_shifts(COMPANY_A, status="open")) == 2
        assert len(shift_service.list_shifts(COMPANY_A, status="CLOSED")) == 1
        assert len(shift_service.list_shifts(COMPANY_A, cashier_id="cashier-2")) == 1
        assert len(shift_service.list_shifts(COMPANY_A, limit=1)) == 1

    def test_list_shifts_bad_status(self, db_session):
        with pytest.raises(ValidationError):
            shift_service.list_shifts(COMPANY_A, status="PAUSED")

    def test_get_open_shift_none(self, db_session):
        assert shift_service.get_open_shift(COMPANY_A, "cashier-1") is None
