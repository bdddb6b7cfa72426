# Overview: Flask API routes for stock opname (physical count) documents.

# backend/kasir/routes/opnames.py
"""
Stock opname routes.

Lifecycle: draft -> in_progress -> completed | cancelled.
Completing posts every counted variance to the stock ledger at once.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import KasirError
from ..services import stock_opname_service
from ..validation import clamp_limit, parse_date_param, require_payload
from ..decorators import require_tenant


opnames_bp = Blueprint("opnames", __name__, url_prefix="/api/stock-opnames")


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error", "code": "INTERNAL"}), 500


@opnames_bp.post("/")
@opnames_bp.post("")
@require_tenant
def create_opname_route():
    """
    Create a draft stock opname.

    Request body:
    {
        "warehouse_id": "WH-01",
        "description": "Monthly count"  (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True), {"warehouse_id"})
        opname = stock_opname_service.create_opname(
            g.company_id,
            data["warehouse_id"],
            g.user_id,
            data.get("description"),
        )
        return jsonify({"opname": opname.to_dict(include_items=True)}), 201
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to create stock opname")


@opnames_bp.get("/")
@opnames_bp.get("")
@require_tenant
def list_opnames_route():
    """Query params: status, warehouse_id, date_from, date_to, limit"""
    try:
        opnames = stock_opname_service.list_opnames(
            g.company_id,
            status=request.args.get("status"),
            warehouse_id=request.args.get("warehouse_id"),
            date_from=parse_date_param(request.args.get("date_from"), "date_from"),
            date_to=parse_date_param(request.args.get("date_to"), "date_to", end_of_day=True),
            limit=clamp_limit(request.args.get("limit", type=int), default=100),
        )
        return jsonify({"opnames": [o.to_dict() for o in opnames]}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to list stock opnames")


@opnames_bp.get("/<int:opname_id>")
@require_tenant
def get_opname_route(opname_id: int):
    try:
        opname = stock_opname_service.get_opname(g.company_id, opname_id)
        return jsonify({"opname": opname.to_dict(include_items=True)}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to load stock opname")


@opnames_bp.post("/<int:opname_id>/items")
@require_tenant
def add_item_route(opname_id: int):
    """Request body: {"product_id": "P-001"}"""
    try:
        data = require_payload(request.get_json(silent=True), {"product_id"})
        item = stock_opname_service.add_item(g.company_id, opname_id, data["product_id"])
        return jsonify({"item": item.to_dict()}), 201
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to add stock opname item")


@opnames_bp.put("/items/<int:item_id>")
@require_tenant
def record_count_route(item_id: int):
    """
    Record the physical count for one line.

    Request body:
    {
        "physical_stock": 42,
        "notes": "2 damaged"  (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True), {"physical_stock"})
        item = stock_opname_service.record_count(
            g.company_id,
            item_id,
            data["physical_stock"],
            g.user_id,
            data.get("notes"),
        )
        return jsonify({"item": item.to_dict()}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to record stock count")


@opnames_bp.delete("/items/<int:item_id>")
@require_tenant
def remove_item_route(item_id: int):
    try:
        stock_opname_service.remove_item(g.company_id, item_id)
        return jsonify({"deleted": True}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to remove stock opname item")


@opnames_bp.post("/<int:opname_id>/start")
@require_tenant
def start_opname_route(opname_id: int):
    try:
        opname = stock_opname_service.start_opname(g.company_id, opname_id)
        return jsonify({"opname": opname.to_dict()}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to start stock opname")


@opnames_bp.post("/<int:opname_id>/complete")
@require_tenant
def complete_opname_route(opname_id: int):
    """Returns 409 (INSUFFICIENT_STOCK) and posts nothing if any line cannot be applied."""
    try:
        opname = stock_opname_service.complete_opname(g.company_id, opname_id, g.user_id)
        return jsonify({"opname": opname.to_dict(include_items=True)}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to complete stock opname")


@opnames_bp.post("/<int:opname_id>/cancel")
@require_tenant
def cancel_opname_route(opname_id: int):
    """Request body (optional): {"reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        opname = stock_opname_service.cancel_opname(
            g.company_id,
            opname_id,
            g.user_id,
            data.get("reason") if isinstance(data, dict) else None,
        )
        return jsonify({"opname": opname.to_dict()}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to cancel stock opname")
