# Overview: Stock opname (physical count) documents; posts count variances to the movement ledger.

"""
Stock opname service.

WHY: A physical count covers many products at once and is usually reviewed
before it touches stock. The document groups the counted lines, and only
completing it writes to the ledger.

LIFECYCLE:
1. draft: Created, products being added (system stock snapshotted per line)
2. in_progress: Counting started, physical quantities recorded per line
3. completed: One ADJUSTMENT per line with a non-zero variance, all in one
   transaction; if any line cannot be posted, nothing is
4. cancelled: Abandoned before completion; the ledger is untouched

Every line edit bumps the document's version_id, so a completion that read
the lines before a concurrent edit fails and recomputes.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import StockOpname, StockOpnameItem, StockRecord
from ..models.opname import (
    OPNAME_CANCELLED,
    OPNAME_COMPLETED,
    OPNAME_DRAFT,
    OPNAME_EDITABLE,
    OPNAME_IN_PROGRESS,
    OPNAME_STATUSES,
)
from ..models.stock import MOVEMENT_ADJUSTMENT
from ..time_utils import utcnow
from ..validation import MAX_QUANTITY, clean_notes, coerce_non_negative_int, require_id
from .concurrency import RETRYABLE_WITH_INSERT_RACES, lock_for_update, run_with_retry
from .stock_ledger_service import REFERENCE_STOCK_OPNAME, _apply_movement_inner


def _next_opname_number(company_id: str, now: datetime) -> str:
    """OP-YYYYMM-NNN, counted per company per month. Unique key catches races."""
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if month_start.month == 12:
        next_month = month_start.replace(year=month_start.year + 1, month=1)
    else:
        next_month = month_start.replace(month=month_start.month + 1)
    count = db.session.query(func.count(StockOpname.id)).filter(
        StockOpname.company_id == company_id,
        StockOpname.created_at >= month_start,
        StockOpname.created_at < next_month,
    ).scalar() or 0
    return f"OP-{now.strftime('%Y%m')}-{count + 1:03d}"


def _lock_opname(company_id: str, opname_id: int) -> StockOpname:
    opname = lock_for_update(
        db.session.query(StockOpname).filter_by(id=opname_id, company_id=company_id)
    ).first()
    if opname is None:
        raise NotFoundError("Stock opname not found")
    return opname


def _lock_item(company_id: str, item_id: int) -> tuple[StockOpname, StockOpnameItem]:
    item = db.session.query(StockOpnameItem).join(StockOpname).filter(
        StockOpnameItem.id == item_id,
        StockOpname.company_id == company_id,
    ).first()
    if item is None:
        raise NotFoundError("Stock opname item not found")
    opname = _lock_opname(company_id, item.opname_id)
    return opname, item


def _require_editable(opname: StockOpname) -> None:
    if opname.status not in OPNAME_EDITABLE:
        raise InvalidStateError(f"Stock opname is {opname.status}")


def create_opname(
    company_id: str,
    warehouse_id: str,
    actor: str,
    description: str | None = None,
) -> StockOpname:
    """Create a draft count document for one warehouse."""
    company_id = require_id(company_id, "company_id")
    warehouse_id = require_id(warehouse_id, "warehouse_id")
    actor = require_id(actor, "actor")
    description = clean_notes(description)

    def _op():
        now = utcnow()
        opname = StockOpname(
            company_id=company_id,
            opname_number=_next_opname_number(company_id, now),
            warehouse_id=warehouse_id,
            status=OPNAME_DRAFT,
            description=description,
            opname_date=now,
            created_by=actor,
            created_at=now,
            updated_at=now,
        )
        db.session.add(opname)
        db.session.commit()
        return opname

    opname = run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)
    current_app.logger.info(
        "Stock opname %s created: warehouse=%s company=%s", opname.opname_number, warehouse_id, company_id
    )
    return opname


def add_item(company_id: str, opname_id: int, product_id: str) -> StockOpnameItem:
    """
    Add a product to the count, snapshotting its current on-hand quantity.

    Raises:
        ConflictError: product already on this opname
        InvalidStateError: opname is completed or cancelled
    """
    company_id = require_id(company_id, "company_id")
    product_id = require_id(product_id, "product_id")

    def _op():
        opname = _lock_opname(company_id, opname_id)
        _require_editable(opname)

        existing = db.session.query(StockOpnameItem).filter_by(
            opname_id=opname.id, product_id=product_id
        ).first()
        if existing is not None:
            raise ConflictError(f"Product {product_id} is already on this opname")

        record = db.session.query(StockRecord).filter_by(
            company_id=company_id,
            product_id=product_id,
            warehouse_id=opname.warehouse_id,
        ).first()

        item = StockOpnameItem(
            opname_id=opname.id,
            product_id=product_id,
            system_stock=record.quantity if record is not None else 0,
            variance=0,
            created_at=utcnow(),
        )
        db.session.add(item)
        opname.updated_at = utcnow()
        db.session.commit()
        return item

    return run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)


def record_count(
    company_id: str,
    item_id: int,
    physical_stock: int,
    actor: str,
    notes: str | None = None,
) -> StockOpnameItem:
    """Record (or re-record) the physical quantity for one line."""
    company_id = require_id(company_id, "company_id")
    actor = require_id(actor, "actor")
    physical_stock = coerce_non_negative_int(physical_stock, "physical_stock", MAX_QUANTITY)
    notes = clean_notes(notes)

    def _op():
        opname, item = _lock_item(company_id, item_id)
        _require_editable(opname)

        now = utcnow()
        item.physical_stock = physical_stock
        item.variance = physical_stock - item.system_stock
        item.notes = notes
        item.counted_at = now
        item.counted_by = actor
        opname.updated_at = now
        db.session.commit()
        return item

    return run_with_retry(_op)


def remove_item(company_id: str, item_id: int) -> None:
    company_id = require_id(company_id, "company_id")

    def _op():
        opname, item = _lock_item(company_id, item_id)
        _require_editable(opname)
        db.session.delete(item)
        opname.updated_at = utcnow()
        db.session.commit()

    run_with_retry(_op)


def start_opname(company_id: str, opname_id: int) -> StockOpname:
    """draft -> in_progress."""
    company_id = require_id(company_id, "company_id")

    def _op():
        opname = _lock_opname(company_id, opname_id)
        if opname.status != OPNAME_DRAFT:
            raise InvalidStateError(f"Cannot start stock opname in {opname.status} status")
        now = utcnow()
        opname.status = OPNAME_IN_PROGRESS
        opname.started_at = now
        opname.updated_at = now
        db.session.commit()
        return opname

    return run_with_retry(_op)


def complete_opname(company_id: str, opname_id: int, actor: str) -> StockOpname:
    """
    Post the count: one ADJUSTMENT movement per line with a non-zero variance.

    The variance is relative to the snapshot taken when the line was added, so
    sales and receipts recorded while counting are kept. All lines post in a
    single transaction; an InsufficientStockError on any line leaves the
    ledger and the document unchanged.

    Raises:
        InvalidStateError: opname is not in_progress
        ValidationError: no lines, or a line has not been counted
        InsufficientStockError: a negative variance exceeds current on-hand
    """
    company_id = require_id(company_id, "company_id")
    actor = require_id(actor, "actor")

    def _op():
        opname = _lock_opname(company_id, opname_id)
        if opname.status != OPNAME_IN_PROGRESS:
            raise InvalidStateError(f"Cannot complete stock opname in {opname.status} status")

        items = list(opname.items)
        if not items:
            raise ValidationError("Cannot complete a stock opname with no items")
        uncounted = [item.product_id for item in items if item.physical_stock is None]
        if uncounted:
            raise ValidationError(f"Items not counted: {', '.join(uncounted)}")

        posted = 0
        for item in items:
            if item.variance == 0:
                continue
            movement, _ = _apply_movement_inner(
                company_id=company_id,
                product_id=item.product_id,
                warehouse_id=opname.warehouse_id,
                movement_type=MOVEMENT_ADJUSTMENT,
                quantity=item.variance,
                actor=actor,
                reference_type=REFERENCE_STOCK_OPNAME,
                reference_id=opname.opname_number,
                notes=item.notes or f"Stock opname {opname.opname_number}",
            )
            item.movement_id = movement.id
            posted += 1

        now = utcnow()
        opname.status = OPNAME_COMPLETED
        opname.completed_at = now
        opname.completed_by = actor
        opname.updated_at = now
        db.session.commit()
        return opname, posted

    opname, posted = run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)
    current_app.logger.info(
        "Stock opname %s completed: %s adjustment(s) posted company=%s",
        opname.opname_number,
        posted,
        company_id,
    )
    return opname


def cancel_opname(company_id: str, opname_id: int, actor: str, reason: str | None = None) -> StockOpname:
    """Cancel a draft or in-progress opname. No movements are written."""
    company_id = require_id(company_id, "company_id")
    actor = require_id(actor, "actor")
    reason = clean_notes(reason)

    def _op():
        opname = _lock_opname(company_id, opname_id)
        if opname.status not in OPNAME_EDITABLE:
            raise InvalidStateError(
                f"Cannot cancel stock opname in {opname.status} status. "
                f"Opnames can only be cancelled before completion."
            )
        now = utcnow()
        opname.status = OPNAME_CANCELLED
        opname.cancelled_at = now
        opname.cancelled_by = actor
        opname.cancellation_reason = reason
        opname.updated_at = now
        db.session.commit()
        return opname

    opname = run_with_retry(_op)
    current_app.logger.info("Stock opname %s cancelled by %s", opname.opname_number, actor)
    return opname


def get_opname(company_id: str, opname_id: int) -> StockOpname:
    opname = db.session.query(StockOpname).filter_by(
        id=opname_id, company_id=require_id(company_id, "company_id")
    ).first()
    if opname is None:
        raise NotFoundError("Stock opname not found")
    return opname


def list_opnames(
    company_id: str,
    *,
    status: str | None = None,
    warehouse_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
) -> list[StockOpname]:
    q = db.session.query(StockOpname).filter_by(company_id=require_id(company_id, "company_id"))

    if status:
        status = status.strip().lower()
        if status not in OPNAME_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(OPNAME_STATUSES)}", field="status")
        q = q.filter(StockOpname.status == status)
    if warehouse_id:
        q = q.filter(StockOpname.warehouse_id == warehouse_id)
    if date_from is not None:
        q = q.filter(StockOpname.opname_date >= date_from)
    if date_to is not None:
        q = q.filter(StockOpname.opname_date <= date_to)

    return q.order_by(StockOpname.created_at.desc(), StockOpname.id.desc()).limit(limit).all()
