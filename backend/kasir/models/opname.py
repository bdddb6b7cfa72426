from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z, utcnow

OPNAME_DRAFT = "draft"
OPNAME_IN_PROGRESS = "in_progress"
OPNAME_COMPLETED = "completed"
OPNAME_CANCELLED = "cancelled"
OPNAME_STATUSES = (OPNAME_DRAFT, OPNAME_IN_PROGRESS, OPNAME_COMPLETED, OPNAME_CANCELLED)

# Lines may be added, counted or removed only while the document is editable
OPNAME_EDITABLE = (OPNAME_DRAFT, OPNAME_IN_PROGRESS)


class StockOpname(db.Model):
    """
    Physical stock count document for one warehouse.

    LIFECYCLE:
    - draft: Created, products being added
    - in_progress: Counting started
    - completed: Variances posted as ADJUSTMENT movements (terminal)
    - cancelled: Abandoned before posting, nothing written to the ledger (terminal)
    """
    __tablename__ = "stock_opnames"
    __table_args__ = (
        db.UniqueConstraint("company_id", "opname_number", name="uq_stock_opnames_number"),
        db.Index("ix_stock_opnames_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(64), nullable=False, index=True)
    opname_number = db.Column(db.String(32), nullable=False)  # OP-YYYYMM-NNN
    warehouse_id = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=OPNAME_DRAFT)
    description = db.Column(db.Text, nullable=True)

    opname_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(64), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    items = db.relationship(
        "StockOpnameItem",
        backref="opname",
        lazy=True,
        order_by="StockOpnameItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<StockOpname {self.opname_number} warehouse={self.warehouse_id!r} {self.status}>"

    def variance_summary(self) -> dict:
        summary = {
            "total_items": 0,
            "counted_items": 0,
            "total_variance": 0,
            "over_items": 0,
            "under_items": 0,
            "match_items": 0,
        }
        for item in self.items:
            summary["total_items"] += 1
            if item.physical_stock is None:
                continue
            summary["counted_items"] += 1
            summary["total_variance"] += abs(item.variance)
            if item.variance > 0:
                summary["over_items"] += 1
            elif item.variance < 0:
                summary["under_items"] += 1
            else:
                summary["match_items"] += 1
        return summary

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "opname_number": self.opname_number,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "description": self.description,
            "opname_date": to_utc_z(self.opname_date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "started_at": to_utc_z(self.started_at) if self.started_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "completed_by": self.completed_by,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["variance_summary"] = self.variance_summary()
        return data


class StockOpnameItem(db.Model):
    """
    One counted product on an opname.

    system_stock is the on-hand snapshot taken when the product was added;
    variance = physical_stock - system_stock once counted.
    """
    __tablename__ = "stock_opname_items"
    __table_args__ = (
        db.UniqueConstraint("opname_id", "product_id", name="uq_stock_opname_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    opname_id = db.Column(db.Integer, db.ForeignKey("stock_opnames.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)

    system_stock = db.Column(db.Integer, nullable=False)
    physical_stock = db.Column(db.Integer, nullable=True)  # NULL until counted
    variance = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    counted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    counted_by = db.Column(db.String(64), nullable=True)

    # ADJUSTMENT written when the opname was completed (NULL for zero variance)
    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "opname_id": self.opname_id,
            "product_id": self.product_id,
            "system_stock": self.system_stock,
            "physical_stock": self.physical_stock,
            "variance": self.variance,
            "notes": self.notes,
            "counted_at": to_utc_z(self.counted_at) if self.counted_at else None,
            "counted_by": self.counted_by,
            "movement_id": self.movement_id,
            "created_at": to_utc_z(self.created_at),
        }
