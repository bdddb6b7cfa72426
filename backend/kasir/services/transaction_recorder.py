# Overview: POS transaction recorder; writes sales against an open shift and feeds shift summaries.

"""
Transaction recorder.

This is the collaborator that the shift service reads sales from. It records
one row per POS sale (payment method + total) against an OPEN shift and lets
a sale be cancelled or refunded afterwards. Only 'paid' rows feed a shift
summary, so cancelling a sale removes it from expected cash.

Line items, promotions and tax are computed by the POS screen before a total
reaches this module; nothing here prices a basket.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PosTransaction, ShiftSession
from ..models.shifts import (
    PAYMENT_METHODS,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_REFUNDED,
    SHIFT_OPEN,
)
from ..time_utils import business_day_prefix, utcnow
from ..validation import clean_notes, coerce_non_negative_int, require_id
from .concurrency import RETRYABLE_WITH_INSERT_RACES, lock_for_update, run_with_retry


@dataclass(frozen=True)
class SaleRecord:
    payment_method: str
    amount: int


def _next_transaction_number(company_id: str, now) -> str:
    """POS-YYYYMMDD-NNNN, counted per company per day. Unique key catches races."""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    count = db.session.query(func.count(PosTransaction.id)).filter(
        PosTransaction.company_id == company_id,
        PosTransaction.transaction_date >= day_start,
        PosTransaction.transaction_date < day_start + timedelta(days=1),
    ).scalar() or 0
    return f"POS-{business_day_prefix(now)}-{count + 1:04d}"


def record_transaction(
    company_id: str,
    shift_id: int,
    cashier_id: str,
    payment_method: str,
    total: int,
    notes: str | None = None,
) -> PosTransaction:
    """
    Record a paid POS sale on an open shift.

    Raises:
        ValidationError: unknown payment method, negative total, blank ids
        NotFoundError: shift does not exist for this company
        InvalidStateError: shift is already closed
    """
    company_id = require_id(company_id, "company_id")
    cashier_id = require_id(cashier_id, "cashier_id")
    total = coerce_non_negative_int(total, "total")
    notes = clean_notes(notes)

    method = str(payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of {', '.join(PAYMENT_METHODS)}", field="payment_method"
        )

    def _op():
        shift = lock_for_update(
            db.session.query(ShiftSession).filter_by(id=shift_id, company_id=company_id)
        ).first()
        if shift is None:
            raise NotFoundError("Shift not found")
        if shift.status != SHIFT_OPEN:
            raise InvalidStateError("Cannot record a sale on a closed shift")

        now = utcnow()
        tx = PosTransaction(
            company_id=company_id,
            transaction_number=_next_transaction_number(company_id, now),
            shift_id=shift.id,
            cashier_id=cashier_id,
            payment_method=method,
            total=total,
            payment_status=PAYMENT_STATUS_PAID,
            notes=notes,
            transaction_date=now,
        )
        db.session.add(tx)
        # Version bump on the shift row; a concurrent close that read the old
        # version fails its compare-and-set
        shift.last_activity_at = now
        db.session.commit()
        return tx

    tx = run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)
    current_app.logger.info(
        "Recorded %s %s sale %s on shift %s", method, total, tx.transaction_number, shift_id
    )
    return tx


def _set_payment_status(company_id: str, transaction_id: int, new_status: str) -> PosTransaction:
    company_id = require_id(company_id, "company_id")

    def _op():
        tx = lock_for_update(
            db.session.query(PosTransaction).filter_by(id=transaction_id, company_id=company_id)
        ).first()
        if tx is None:
            raise NotFoundError("Transaction not found")
        if tx.payment_status != PAYMENT_STATUS_PAID:
            raise InvalidStateError(f"Transaction is already {tx.payment_status}")

        shift = lock_for_update(
            db.session.query(ShiftSession).filter_by(id=tx.shift_id, company_id=company_id)
        ).first()
        if shift is not None and shift.status == SHIFT_OPEN:
            shift.last_activity_at = utcnow()
        tx.payment_status = new_status
        db.session.commit()
        return tx

    tx = run_with_retry(_op)
    current_app.logger.info("Transaction %s marked %s", tx.transaction_number, new_status)
    return tx


def cancel_transaction(company_id: str, transaction_id: int) -> PosTransaction:
    return _set_payment_status(company_id, transaction_id, PAYMENT_STATUS_CANCELLED)


def refund_transaction(company_id: str, transaction_id: int) -> PosTransaction:
    return _set_payment_status(company_id, transaction_id, PAYMENT_STATUS_REFUNDED)


def sales_for_shift(company_id: str, shift_id: int) -> list[SaleRecord]:
    """Default sales feed: paid transactions recorded against the shift."""
    rows = db.session.query(
        PosTransaction.payment_method,
        PosTransaction.total,
    ).filter(
        PosTransaction.company_id == company_id,
        PosTransaction.shift_id == shift_id,
        PosTransaction.payment_status == PAYMENT_STATUS_PAID,
    ).order_by(PosTransaction.id).all()
    return [SaleRecord(payment_method=method, amount=int(total)) for method, total in rows]
