from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z, utcnow

SHIFT_OPEN = "OPEN"
SHIFT_CLOSED = "CLOSED"

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_TRANSFER = "transfer"
PAYMENT_EWALLET = "e-wallet"
PAYMENT_CREDIT = "credit"
PAYMENT_SPLIT = "split"
PAYMENT_METHODS = (
    PAYMENT_CASH,
    PAYMENT_CARD,
    PAYMENT_TRANSFER,
    PAYMENT_EWALLET,
    PAYMENT_CREDIT,
    PAYMENT_SPLIT,
)

PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_CANCELLED = "cancelled"
PAYMENT_STATUS_REFUNDED = "refunded"


class ShiftSession(db.Model):
    """
    One cashier's cash-drawer session on a register.

    LIFECYCLE:
    - OPEN: Shift is active, sales accumulate against it
    - CLOSED: Cash counted, variance recorded (terminal)

    At most one OPEN session per (company, cashier, register); the partial
    unique index below is what guarantees it under concurrent opens.

    IMMUTABLE: Once closed, session cannot be reopened or modified.
    """
    __tablename__ = "shift_sessions"
    __table_args__ = (
        db.Index(
            "uq_shift_sessions_open_scope",
            "company_id",
            "cashier_id",
            "register_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_shift_sessions_company_opened", "company_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(64), nullable=False, index=True)
    cashier_id = db.Column(db.String(64), nullable=False, index=True)
    register_id = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)  # OPEN, CLOSED

    # Cash amounts in Rupiah (smallest unit, integer)
    opening_cash = db.Column(db.BigInteger, nullable=False, default=0)
    closing_cash = db.Column(db.BigInteger, nullable=True)  # expected cash at close
    actual_cash = db.Column(db.BigInteger, nullable=True)  # counted cash
    variance = db.Column(db.BigInteger, nullable=True)  # actual - expected

    notes = db.Column(db.Text, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)

    # Set by every sale, cancel or refund while OPEN; each one bumps version_id
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ShiftSession id={self.id} cashier={self.cashier_id!r} register={self.register_id!r} {self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "cashier_id": self.cashier_id,
            "register_id": self.register_id,
            "status": self.status,
            "opening_cash": self.opening_cash,
            "closing_cash": self.closing_cash,
            "actual_cash": self.actual_cash,
            "variance": self.variance,
            "notes": self.notes,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by": self.closed_by,
            "last_activity_at": to_utc_z(self.last_activity_at) if self.last_activity_at else None,
            "version_id": self.version_id,
        }


class PosTransaction(db.Model):
    """
    A recorded POS sale, as written by the transaction recorder.

    Shift summaries read these rows; only payment_status='paid' counts.
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.UniqueConstraint("company_id", "transaction_number", name="uq_pos_transactions_number"),
        db.Index("ix_pos_transactions_shift_status", "shift_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(64), nullable=False, index=True)
    transaction_number = db.Column(db.String(32), nullable=False)

    shift_id = db.Column(db.Integer, db.ForeignKey("shift_sessions.id"), nullable=False, index=True)
    cashier_id = db.Column(db.String(64), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    total = db.Column(db.BigInteger, nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PAID)

    notes = db.Column(db.Text, nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    shift = db.relationship("ShiftSession", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "transaction_number": self.transaction_number,
            "shift_id": self.shift_id,
            "cashier_id": self.cashier_id,
            "payment_method": self.payment_method,
            "total": self.total,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "transaction_date": to_utc_z(self.transaction_date),
        }
