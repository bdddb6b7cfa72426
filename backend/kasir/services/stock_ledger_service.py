# Overview: Movement ledger and stock projection; the only writer of stock_records.

"""
Kasir Stock Ledger Invariants (authoritative)

Model:
- stock_movements is an append-only log (IN, OUT, ADJUSTMENT); rows are never
  updated or deleted.
- stock_records holds the current quantity per (company, product, warehouse)
  and is written ONLY here, in the same DB transaction as the movement that
  explains the change.
- Conservation: stock_records.quantity == SUM(+IN, +ADJUSTMENT, -OUT) per key.

Business invariants:
- On-hand quantity never goes negative. A movement that would make it
  negative raises InsufficientStockError and writes nothing at all, not even
  the implicit zero-quantity record for a new key.
- IN/OUT quantities are > 0; ADJUSTMENT is signed and non-zero.
- On-hand quantity never exceeds MAX_QUANTITY (the Integer column bound); an
  overflowing movement raises ValidationError and writes nothing.

Concurrency:
- The current row is read with SELECT ... FOR UPDATE and written with a
  version_id precondition. Two writers that read the same version cannot both
  commit: the loser gets StaleDataError (or a lock error on SQLite) and
  run_with_retry replays it against the fresh quantity, where it either fits
  or fails with InsufficientStockError.
- First-touch inserts race on the unique key; the loser's IntegrityError is
  retried and then sees the winner's row.

Tenant scope:
- company_id is an explicit argument on every call; nothing here looks up
  the "current" company.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy import case, func

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..models import StockMovement, StockRecord
from ..models.stock import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES
from ..time_utils import utcnow
from ..validation import MAX_QUANTITY, clean_notes, coerce_int, coerce_non_negative_int, require_id
from .concurrency import RETRYABLE_WITH_INSERT_RACES, lock_for_update, run_with_retry

REFERENCE_TRANSFER = "transfer"
REFERENCE_STOCK_OPNAME = "stock_opname"


def _normalize_type(movement_type) -> str:
    value = str(movement_type or "").strip().upper()
    if value not in MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of {', '.join(MOVEMENT_TYPES)}", field="movement_type"
        )
    return value


def _validate_quantity(movement_type: str, quantity) -> int:
    qty = coerce_int(quantity, "quantity", MAX_QUANTITY)
    if movement_type in (MOVEMENT_IN, MOVEMENT_OUT) and qty <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type}", field="quantity")
    if movement_type == MOVEMENT_ADJUSTMENT and qty == 0:
        raise ValidationError("quantity must be non-zero for ADJUSTMENT", field="quantity")
    return qty


def _load_record(company_id: str, product_id: str, warehouse_id: str) -> StockRecord | None:
    query = db.session.query(StockRecord).filter_by(
        company_id=company_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
    )
    return lock_for_update(query).first()


def _apply_movement_inner(
    *,
    company_id: str,
    product_id: str,
    warehouse_id: str,
    movement_type: str,
    quantity: int,
    actor: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
) -> tuple[StockMovement, StockRecord]:
    """Core check-and-update without retry or commit. Inputs must already be validated."""
    record = _load_record(company_id, product_id, warehouse_id)
    current = record.quantity if record is not None else 0

    delta = -quantity if movement_type == MOVEMENT_OUT else quantity
    candidate = current + delta
    if candidate < 0:
        raise InsufficientStockError(
            product_id=product_id,
            warehouse_id=warehouse_id,
            available=current,
            requested=abs(delta),
        )
    if candidate > MAX_QUANTITY:
        raise ValidationError(
            f"quantity on hand would exceed maximum {MAX_QUANTITY}", field="quantity"
        )

    now = utcnow()
    if record is None:
        record = StockRecord(
            company_id=company_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=candidate,
            last_updated=now,
            created_at=now,
        )
        db.session.add(record)
    else:
        record.quantity = candidate
        record.last_updated = now

    movement = StockMovement(
        company_id=company_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=movement_type,
        quantity=quantity,
        quantity_after=candidate,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=actor,
        created_at=now,
    )
    db.session.add(movement)
    db.session.flush()
    return movement, record


def apply_movement(
    company_id: str,
    product_id: str,
    warehouse_id: str,
    movement_type: str,
    quantity: int,
    actor: str,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
) -> StockRecord:
    """
    Append one movement and update the projection as a single atomic unit.

    Raises:
        ValidationError: bad type, non-integer or out-of-range quantity, blank key/actor
        InsufficientStockError: the movement would make on-hand negative
        StorageError: storage unavailable or retry budget exhausted
    """
    company_id = require_id(company_id, "company_id")
    product_id = require_id(product_id, "product_id")
    warehouse_id = require_id(warehouse_id, "warehouse_id")
    actor = require_id(actor, "actor")
    movement_type = _normalize_type(movement_type)
    quantity = _validate_quantity(movement_type, quantity)
    notes = clean_notes(notes)

    def _op():
        movement, record = _apply_movement_inner(
            company_id=company_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            movement_type=movement_type,
            quantity=quantity,
            actor=actor,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
        )
        db.session.commit()
        return movement, record

    movement, record = run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)
    current_app.logger.info(
        "Stock movement %s applied: %s %s product=%s warehouse=%s company=%s -> %s",
        movement.id,
        movement_type,
        quantity,
        product_id,
        warehouse_id,
        company_id,
        movement.quantity_after,
    )
    return record


def current_quantity(company_id: str, product_id: str, warehouse_id: str) -> int:
    """Read-only projection lookup; 0 for a key that has never moved."""
    record = db.session.query(StockRecord).filter_by(
        company_id=require_id(company_id, "company_id"),
        product_id=require_id(product_id, "product_id"),
        warehouse_id=require_id(warehouse_id, "warehouse_id"),
    ).first()
    return record.quantity if record is not None else 0


def transfer_stock(
    company_id: str,
    product_id: str,
    from_warehouse_id: str,
    to_warehouse_id: str,
    quantity: int,
    actor: str,
    notes: str | None = None,
) -> tuple[StockRecord, StockRecord]:
    """
    Move stock between two warehouses of the same company.

    Writes an OUT at the source and an IN at the destination in ONE
    transaction, sharing reference_type='transfer' and a generated
    reference_id. If the source is short, neither side is written.
    """
    company_id = require_id(company_id, "company_id")
    product_id = require_id(product_id, "product_id")
    from_warehouse_id = require_id(from_warehouse_id, "from_warehouse_id")
    to_warehouse_id = require_id(to_warehouse_id, "to_warehouse_id")
    actor = require_id(actor, "actor")
    quantity = _validate_quantity(MOVEMENT_OUT, quantity)
    notes = clean_notes(notes)

    if from_warehouse_id == to_warehouse_id:
        raise ValidationError("Source and destination warehouse must differ", field="to_warehouse_id")

    reference_id = uuid.uuid4().hex

    def _op():
        # Lock both keys in a stable order so opposite transfers cannot deadlock
        for warehouse_id in sorted((from_warehouse_id, to_warehouse_id)):
            _load_record(company_id, product_id, warehouse_id)

        _, source = _apply_movement_inner(
            company_id=company_id,
            product_id=product_id,
            warehouse_id=from_warehouse_id,
            movement_type=MOVEMENT_OUT,
            quantity=quantity,
            actor=actor,
            reference_type=REFERENCE_TRANSFER,
            reference_id=reference_id,
            notes=notes,
        )
        _, destination = _apply_movement_inner(
            company_id=company_id,
            product_id=product_id,
            warehouse_id=to_warehouse_id,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            actor=actor,
            reference_type=REFERENCE_TRANSFER,
            reference_id=reference_id,
            notes=notes,
        )
        db.session.commit()
        return source, destination

    source, destination = run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)
    current_app.logger.info(
        "Stock transfer %s: %s of product=%s %s -> %s company=%s",
        reference_id,
        quantity,
        product_id,
        from_warehouse_id,
        to_warehouse_id,
        company_id,
    )
    return source, destination


def adjust_to_count(
    company_id: str,
    product_id: str,
    warehouse_id: str,
    counted_quantity: int,
    actor: str,
    notes: str | None,
) -> StockMovement | None:
    """
    Stock opname: bring the projection to a physically counted quantity.

    The delta (counted - current) is computed under the same lock as the
    write, so a concurrent sale cannot slip in between read and adjust.
    Returns the ADJUSTMENT movement, or None when the count already matches.
    """
    company_id = require_id(company_id, "company_id")
    product_id = require_id(product_id, "product_id")
    warehouse_id = require_id(warehouse_id, "warehouse_id")
    actor = require_id(actor, "actor")
    counted_quantity = coerce_non_negative_int(counted_quantity, "counted_quantity", MAX_QUANTITY)
    notes = clean_notes(notes)
    if notes is None:
        raise ValidationError("notes are required for a stock count adjustment", field="notes")

    def _op():
        record = _load_record(company_id, product_id, warehouse_id)
        current = record.quantity if record is not None else 0
        delta = counted_quantity - current
        if delta == 0:
            db.session.rollback()
            return None

        movement, _ = _apply_movement_inner(
            company_id=company_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            movement_type=MOVEMENT_ADJUSTMENT,
            quantity=delta,
            actor=actor,
            reference_type=REFERENCE_STOCK_OPNAME,
            notes=notes,
        )
        db.session.commit()
        return movement

    movement = run_with_retry(_op, retry_on=RETRYABLE_WITH_INSERT_RACES)
    if movement is not None:
        current_app.logger.info(
            "Stock count adjustment %s: product=%s warehouse=%s delta=%s company=%s",
            movement.id,
            product_id,
            warehouse_id,
            movement.quantity,
            company_id,
        )
    return movement


def list_movements(
    company_id: str,
    *,
    product_id: str | None = None,
    warehouse_id: str | None = None,
    movement_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Movement history for a company, newest first. date_to is inclusive."""
    q = db.session.query(StockMovement).filter_by(company_id=require_id(company_id, "company_id"))

    if product_id:
        q = q.filter(StockMovement.product_id == product_id)
    if warehouse_id:
        q = q.filter(StockMovement.warehouse_id == warehouse_id)
    if movement_type:
        q = q.filter(StockMovement.movement_type == _normalize_type(movement_type))
    if date_from is not None:
        q = q.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        q = q.filter(StockMovement.created_at <= date_to)

    return q.order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    ).limit(limit).all()


def list_stock(company_id: str, warehouse_id: str | None = None) -> list[StockRecord]:
    q = db.session.query(StockRecord).filter_by(company_id=require_id(company_id, "company_id"))
    if warehouse_id:
        q = q.filter(StockRecord.warehouse_id == warehouse_id)
    return q.order_by(StockRecord.warehouse_id, StockRecord.product_id).all()


def verify_projection(company_id: str) -> list[dict]:
    """
    Conservation audit: compare every StockRecord with the sum of its movements.

    Returns one entry per mismatching (product, warehouse) key; an empty list
    means the projection is consistent with the ledger.
    """
    company_id = require_id(company_id, "company_id")

    signed = case(
        (StockMovement.movement_type == MOVEMENT_OUT, -StockMovement.quantity),
        else_=StockMovement.quantity,
    )
    rows = db.session.query(
        StockMovement.product_id,
        StockMovement.warehouse_id,
        func.coalesce(func.sum(signed), 0),
    ).filter(
        StockMovement.company_id == company_id,
    ).group_by(
        StockMovement.product_id,
        StockMovement.warehouse_id,
    ).all()
    ledger = {(product_id, warehouse_id): int(total) for product_id, warehouse_id, total in rows}

    projected = {
        (r.product_id, r.warehouse_id): r.quantity
        for r in db.session.query(StockRecord).filter_by(company_id=company_id).all()
    }

    mismatches = []
    for product_id, warehouse_id in sorted(set(ledger) | set(projected)):
        expected = ledger.get((product_id, warehouse_id), 0)
        actual = projected.get((product_id, warehouse_id), 0)
        if expected != actual:
            mismatches.append({
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "ledger_quantity": expected,
                "projected_quantity": actual,
            })
    return mismatches
