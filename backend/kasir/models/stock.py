from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z, utcnow

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)


class StockRecord(db.Model):
    """
    Current on-hand quantity for one (company, product, warehouse) key.

    WHY: Materialized projection of the movement ledger so reads are a single
    row lookup instead of a SUM over history.

    INVARIANTS:
    - quantity >= 0 (also enforced by a CHECK constraint)
    - Written only by stock_ledger_service, in the same DB transaction as the
      StockMovement that explains the change
    - version_id guards against lost updates between concurrent writers
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("company_id", "product_id", "warehouse_id", name="uq_stock_records_key"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_nonneg"),
        db.Index("ix_stock_records_company_warehouse", "company_id", "warehouse_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Tenant scope and catalog keys are opaque identifiers owned elsewhere
    company_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)
    warehouse_id = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockRecord company={self.company_id!r} product={self.product_id!r} "
            f"warehouse={self.warehouse_id!r} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only inventory movement fact.

    quantity is the magnitude for IN/OUT and the signed delta for ADJUSTMENT.
    signed_quantity gives the effect on the projection for every type, so
    SUM(signed_quantity) over a key always equals StockRecord.quantity.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_key", "company_id", "product_id", "warehouse_id"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)
    warehouse_id = db.Column(db.String(64), nullable=False)

    movement_type = db.Column(db.String(16), nullable=False, index=True)  # IN, OUT, ADJUSTMENT
    quantity = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    # Source document (e.g. "transfer", "stock_opname", "pos_transaction")
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    @property
    def signed_quantity(self) -> int:
        if self.movement_type == MOVEMENT_OUT:
            return -self.quantity
        return self.quantity

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} {self.movement_type} {self.quantity} product={self.product_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "quantity_after": self.quantity_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
