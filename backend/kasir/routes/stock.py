# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/kasir/routes/stock.py
"""
Stock ledger routes.

All routes require tenant context (X-Company-Id / X-User-Id from the auth
gateway). The acting user is recorded as created_by on every movement.

Error mapping:
- ValidationError -> 400
- NotFoundError -> 404
- InsufficientStockError -> 409 (expected business outcome, not a server fault)
- StorageError -> 503
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import KasirError
from ..services import stock_ledger_service
from ..validation import clamp_limit, parse_date_param, require_payload
from ..decorators import require_tenant


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error", "code": "INTERNAL"}), 500


@stock_bp.get("/")
@stock_bp.get("")
@require_tenant
def list_stock_route():
    """
    List stock records for the company.

    Query params: warehouse_id (optional)
    """
    try:
        records = stock_ledger_service.list_stock(
            g.company_id,
            warehouse_id=request.args.get("warehouse_id"),
        )
        return jsonify({"stock": [r.to_dict() for r in records]}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to list stock")


@stock_bp.get("/quantity")
@require_tenant
def get_quantity_route():
    """
    Current on-hand quantity for one product in one warehouse.

    Query params: product_id, warehouse_id (required)
    """
    try:
        product_id = request.args.get("product_id")
        warehouse_id = request.args.get("warehouse_id")
        quantity = stock_ledger_service.current_quantity(g.company_id, product_id, warehouse_id)
        return jsonify({
            "product_id": product_id,
            "warehouse_id": warehouse_id,
            "quantity": quantity,
        }), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to read stock quantity")


@stock_bp.post("/movements")
@require_tenant
def create_movement_route():
    """
    Apply an inventory movement.

    Request body:
    {
        "product_id": "P-001",
        "warehouse_id": "WH-01",
        "movement_type": "IN" | "OUT" | "ADJUSTMENT",
        "quantity": 10,          // > 0 for IN/OUT, signed non-zero for ADJUSTMENT
        "reference_type": "purchase_order",   (optional)
        "reference_id": "PO-123",             (optional)
        "notes": "..."                        (optional)
    }

    Returns 409 with code INSUFFICIENT_STOCK if on-hand would go negative.
    """
    try:
        data = require_payload(
            request.get_json(silent=True),
            {"product_id", "warehouse_id", "movement_type", "quantity"},
        )
        record = stock_ledger_service.apply_movement(
            g.company_id,
            data["product_id"],
            data["warehouse_id"],
            data["movement_type"],
            data["quantity"],
            g.user_id,
            reference_type=data.get("reference_type"),
            reference_id=data.get("reference_id"),
            notes=data.get("notes"),
        )
        return jsonify({"stock": record.to_dict()}), 201
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to apply stock movement")


@stock_bp.get("/movements")
@require_tenant
def list_movements_route():
    """
    Movement history, newest first.

    Query params: product_id, warehouse_id, movement_type, date_from, date_to, limit
    """
    try:
        movements = stock_ledger_service.list_movements(
            g.company_id,
            product_id=request.args.get("product_id"),
            warehouse_id=request.args.get("warehouse_id"),
            movement_type=request.args.get("movement_type"),
            date_from=parse_date_param(request.args.get("date_from"), "date_from"),
            date_to=parse_date_param(request.args.get("date_to"), "date_to", end_of_day=True),
            limit=clamp_limit(request.args.get("limit", type=int), default=200),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to list stock movements")


@stock_bp.post("/transfers")
@require_tenant
def transfer_route():
    """
    Transfer stock between warehouses (OUT + IN in one transaction).

    Request body:
    {
        "product_id": "P-001",
        "from_warehouse_id": "WH-01",
        "to_warehouse_id": "WH-02",
        "quantity": 5,
        "notes": "..."  (optional)
    }
    """
    try:
        data = require_payload(
            request.get_json(silent=True),
            {"product_id", "from_warehouse_id", "to_warehouse_id", "quantity"},
        )
        source, destination = stock_ledger_service.transfer_stock(
            g.company_id,
            data["product_id"],
            data["from_warehouse_id"],
            data["to_warehouse_id"],
            data["quantity"],
            g.user_id,
            notes=data.get("notes"),
        )
        return jsonify({
            "source": source.to_dict(),
            "destination": destination.to_dict(),
        }), 201
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to transfer stock")


@stock_bp.post("/counts")
@require_tenant
def stock_count_route():
    """
    Record a physical count (stock opname) and adjust on-hand to match.

    Request body:
    {
        "product_id": "P-001",
        "warehouse_id": "WH-01",
        "counted_quantity": 42,
        "notes": "Monthly opname"
    }
    """
    try:
        data = require_payload(
            request.get_json(silent=True),
            {"product_id", "warehouse_id", "counted_quantity"},
        )
        movement = stock_ledger_service.adjust_to_count(
            g.company_id,
            data["product_id"],
            data["warehouse_id"],
            data["counted_quantity"],
            g.user_id,
            data.get("notes"),
        )
        quantity = stock_ledger_service.current_quantity(
            g.company_id, data["product_id"], data["warehouse_id"]
        )
        return jsonify({
            "movement": movement.to_dict() if movement else None,
            "quantity": quantity,
        }), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to record stock count")
