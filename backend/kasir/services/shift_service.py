"""
POS Shift Management Service

WHY: Cashier accountability. A shift opens a cash drawer with a counted
float, accumulates sales while OPEN, and closes by comparing the counted
drawer against expected cash.

DESIGN PRINCIPLES:
- One OPEN shift per (company, cashier, register), guaranteed by a partial
  unique index, not only by the pre-check below
- OPEN -> CLOSED is the only transition; CLOSED is terminal
- Close is a compare-and-set on (status, version_id); every sale bumps the
  version, so a close never stores totals computed from a superseded feed
- Summaries are recomputed from the sales feed on every request, never stored
- Any non-zero variance must be explained in the closing notes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ShiftSession
from ..models.shifts import (
    PAYMENT_CARD,
    PAYMENT_CASH,
    PAYMENT_TRANSFER,
    SHIFT_CLOSED,
    SHIFT_OPEN,
)
from ..time_utils import to_utc_z, utcnow
from ..validation import clean_notes, coerce_non_negative_int, require_id
from . import reconciliation
from .concurrency import RETRYABLE_WITH_INSERT_RACES, lock_for_update, run_with_retry
from .transaction_recorder import SaleRecord, sales_for_shift

SalesFeed = Callable[[str, int], Iterable[SaleRecord]]

SHIFT_STATUSES = (SHIFT_OPEN, SHIFT_CLOSED)


@dataclass(frozen=True)
class ShiftSummary:
    shift_id: int
    status: str
    opened_at: datetime
    closed_at: datetime | None
    opening_cash: int
    total_transactions: int
    cash_sales: int
    card_sales: int
    transfer_sales: int
    other_sales: int
    total_sales: int
    expected_cash: int
    closing_cash: int | None = None
    actual_cash: int | None = None
    variance: int | None = None
    sales_by_method: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "shift_id": self.shift_id,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "opening_cash": self.opening_cash,
            "total_transactions": self.total_transactions,
            "cash_sales": self.cash_sales,
            "card_sales": self.card_sales,
            "transfer_sales": self.transfer_sales,
            "other_sales": self.other_sales,
            "total_sales": self.total_sales,
            "expected_cash": self.expected_cash,
            "closing_cash": self.closing_cash,
            "actual_cash": self.actual_cash,
            "variance": self.variance,
            "sales_by_method": dict(self.sales_by_method),
        }


def summarize_sales(opening_cash: int, sales: Iterable[SaleRecord]) -> dict:
    """
    Aggregate a shift's sales by payment method.

    Only cash-method sales land in the drawer, so
    expected_cash = opening_cash + cash_sales. E-wallet, credit and split
    sales count toward total_sales and other_sales only.
    """
    by_method: dict[str, int] = {}
    count = 0
    for sale in sales:
        by_method[sale.payment_method] = by_method.get(sale.payment_method, 0) + sale.amount
        count += 1

    cash = by_method.get(PAYMENT_CASH, 0)
    card = by_method.get(PAYMENT_CARD, 0)
    transfer = by_method.get(PAYMENT_TRANSFER, 0)
    total = sum(by_method.values())

    return {
        "total_transactions": count,
        "cash_sales": cash,
        "card_sales": card,
        "transfer_sales": transfer,
        "other_sales": total - cash - card - transfer,
        "total_sales": total,
        "expected_cash": opening_cash + cash,
        "sales_by_method": by_method,
    }


def _build_summary(shift: ShiftSession, sales: Iterable[SaleRecord]) -> ShiftSummary:
    totals = summarize_sales(shift.opening_cash, sales)
    return ShiftSummary(
        shift_id=shift.id,
        status=shift.status,
        opened_at=shift.opened_at,
        closed_at=shift.closed_at,
        opening_cash=shift.opening_cash,
        closing_cash=shift.closing_cash,
        actual_cash=shift.actual_cash,
        variance=shift.variance,
        **totals,
    )


def _get_shift(company_id: str, session_id: int) -> ShiftSession:
    shift = db.session.query(ShiftSession).filter_by(id=session_id, company_id=company_id).first()
    if shift is None:
        raise NotFoundError("Shift not found")
    return shift


def get_shift(company_id: str, session_id: int) -> ShiftSession:
    return _get_shift(require_id(company_id, "company_id"), session_id)


def open_shift(
    company_id: str,
    cashier_id: str,
    register_id: str,
    opening_cash: int,
) -> ShiftSession:
    """
    Open a new shift for a cashier on a register.

    Raises:
        ValidationError: negative or non-integer opening cash, blank ids
        ConflictError: an OPEN shift already exists for (cashier, register)
    """
    company_id = require_id(company_id, "company_id")
    cashier_id = require_id(cashier_id, "cashier_id")
    register_id = require_id(register_id, "register_id")
    opening_cash = coerce_non_negative_int(opening_cash, "opening_cash")

    def _op():
        existing = db.session.query(ShiftSession).filter_by(
            company_id=company_id,
            cashier_id=cashier_id,
            register_id=register_id,
            status=SHIFT_OPEN,
        ).first()
        if existing is not None:
            raise ConflictError(
                f"Cashier already has an open shift on this register (session {existing.id})"
            )

        shift = ShiftSession(
            company_id=company_id,
            cashier_id=cashier_id,
            register_id=register_id,
            status=SHIFT_OPEN,
            opening_cash=opening_cash,
            opened_at=utcnow(),
        )
        db.session.add(shift)
        db.session.commit()
        return shift

    # A concurrent opener that loses the unique-index race retries and then
    # fails the pre-check above with ConflictError
    shift = run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)
    current_app.logger.info(
        "Shift %s opened: cashier=%s register=%s company=%s opening_cash=%s",
        shift.id,
        cashier_id,
        register_id,
        company_id,
        opening_cash,
    )
    return shift


def get_summary(company_id: str, session_id: int, sales_feed: SalesFeed | None = None) -> ShiftSummary:
    """Recompute the shift summary from the sales feed (OPEN or CLOSED shifts)."""
    shift = get_shift(company_id, session_id)
    feed = sales_feed or sales_for_shift
    return _build_summary(shift, feed(shift.company_id, shift.id))


def close_shift(
    company_id: str,
    session_id: int,
    actual_cash: int,
    notes: str | None = None,
    *,
    closed_by: str | None = None,
    sales_feed: SalesFeed | None = None,
) -> ShiftSession:
    """
    Close a shift and record the cash variance.

    IMMUTABLE: Once closed, the session cannot be reopened or closed again.

    Raises:
        ValidationError: negative or non-integer actual cash; non-zero variance without notes
        NotFoundError: no such shift for this company
        InvalidStateError: shift already closed (including a lost concurrent close)
    """
    company_id = require_id(company_id, "company_id")
    actual_cash = coerce_non_negative_int(actual_cash, "actual_cash")
    notes = clean_notes(notes)
    if closed_by is not None:
        closed_by = require_id(closed_by, "closed_by")
    feed = sales_feed or sales_for_shift

    def _op():
        shift = lock_for_update(
            db.session.query(ShiftSession).filter_by(id=session_id, company_id=company_id)
        ).first()
        if shift is None:
            raise NotFoundError("Shift not found")
        if shift.status != SHIFT_OPEN:
            raise InvalidStateError("Shift already closed")

        read_version = shift.version_id
        summary = _build_summary(shift, feed(company_id, shift.id))
        result = reconciliation.evaluate(summary.expected_cash, actual_cash)
        if result.requires_notes and notes is None:
            raise ValidationError("variance must be explained", field="notes")

        # The sales feed was read at this version; a sale committed since then
        # bumped it, so zero rows means stale or already closed and is retried
        updated = db.session.query(ShiftSession).filter(
            ShiftSession.id == shift.id,
            ShiftSession.status == SHIFT_OPEN,
            ShiftSession.version_id == read_version,
        ).update(
            {
                "status": SHIFT_CLOSED,
                "version_id": read_version + 1,
                "closing_cash": result.expected_cash,
                "actual_cash": result.actual_cash,
                "variance": result.variance,
                "notes": notes,
                "closed_at": utcnow(),
                "closed_by": closed_by or shift.cashier_id,
            },
            synchronize_session=False,
        )
        if updated != 1:
            raise StaleDataError(f"shift {shift.id} changed while closing")

        db.session.commit()
        return shift, result

    shift, result = run_with_retry(_op)
    current_app.logger.info(
        "Shift %s closed: expected=%s actual=%s variance=%s (%s)",
        session_id,
        result.expected_cash,
        result.actual_cash,
        result.variance,
        result.status,
    )
    return shift


def get_open_shift(company_id: str, cashier_id: str, register_id: str | None = None) -> ShiftSession | None:
    """Current OPEN shift for a cashier (optionally on one register), if any."""
    q = db.session.query(ShiftSession).filter_by(
        company_id=require_id(company_id, "company_id"),
        cashier_id=require_id(cashier_id, "cashier_id"),
        status=SHIFT_OPEN,
    )
    if register_id:
        q = q.filter(ShiftSession.register_id == register_id)
    return q.order_by(ShiftSession.opened_at.desc()).first()


def list_shifts(
    company_id: str,
    *,
    status: str | None = None,
    cashier_id: str | None = None,
    register_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
) -> list[ShiftSession]:
    q = db.session.query(ShiftSession).filter_by(company_id=require_id(company_id, "company_id"))

    if status:
        status = status.strip().upper()
        if status not in SHIFT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(SHIFT_STATUSES)}", field="status")
        q = q.filter(ShiftSession.status == status)
    if cashier_id:
        q = q.filter(ShiftSession.cashier_id == cashier_id)
    if register_id:
        q = q.filter(ShiftSession.register_id == register_id)
    if date_from is not None:
        q = q.filter(ShiftSession.opened_at >= date_from)
    if date_to is not None:
        q = q.filter(ShiftSession.opened_at <= date_to)

    return q.order_by(ShiftSession.opened_at.desc(), ShiftSession.id.desc()).limit(limit).all()
