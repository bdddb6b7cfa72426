# Overview: Flask API routes for POS shifts; parses input and returns JSON responses.

# backend/kasir/routes/shifts.py
"""
POS Shift API Routes

DESIGN:
- Shift lifecycle: open -> close (immutable once closed)
- The acting user (X-User-Id) is the cashier on open and the closer on close
- Counted cash of 0 is a valid count; server-side checks do not rely on
  the POS screen disabling its close button
- Sales are recorded against an open shift and feed the summary
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import KasirError, ValidationError
from ..services import shift_service, transaction_recorder
from ..validation import clamp_limit, parse_date_param, require_payload
from ..decorators import require_tenant


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error", "code": "INTERNAL"}), 500


@shifts_bp.post("/")
@shifts_bp.post("")
@require_tenant
def open_shift_route():
    """
    Open a shift for the acting cashier.

    Request body:
    {
        "register_id": "REG-01",
        "opening_cash": 500000   // Rupiah counted into the drawer
    }

    Returns 409 (CONFLICT) if the cashier already has an open shift on the register.
    """
    try:
        data = require_payload(request.get_json(silent=True), {"register_id", "opening_cash"})
        shift = shift_service.open_shift(
            g.company_id,
            g.user_id,
            data["register_id"],
            data["opening_cash"],
        )
        return jsonify({"shift": shift.to_dict()}), 201
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to open shift")


@shifts_bp.get("/")
@shifts_bp.get("")
@require_tenant
def list_shifts_route():
    """
    List shifts for the company, newest first.

    Query params: status (OPEN/CLOSED), cashier_id, register_id, date_from, date_to, limit
    """
    try:
        shifts = shift_service.list_shifts(
            g.company_id,
            status=request.args.get("status"),
            cashier_id=request.args.get("cashier_id"),
            register_id=request.args.get("register_id"),
            date_from=parse_date_param(request.args.get("date_from"), "date_from"),
            date_to=parse_date_param(request.args.get("date_to"), "date_to", end_of_day=True),
            limit=clamp_limit(request.args.get("limit", type=int), default=100),
        )
        return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to list shifts")


@shifts_bp.get("/current")
@require_tenant
def current_shift_route():
    """Current open shift for the acting cashier (optionally ?register_id=...)."""
    try:
        shift = shift_service.get_open_shift(
            g.company_id,
            g.user_id,
            register_id=request.args.get("register_id"),
        )
        return jsonify({"shift": shift.to_dict() if shift else None}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to load current shift")


@shifts_bp.get("/<int:shift_id>")
@require_tenant
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(g.company_id, shift_id)
        return jsonify({"shift": shift.to_dict()}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to load shift")


@shifts_bp.get("/<int:shift_id>/summary")
@require_tenant
def shift_summary_route(shift_id: int):
    """Recomputed summary: totals per payment method and expected cash."""
    try:
        summary = shift_service.get_summary(g.company_id, shift_id)
        return jsonify({"summary": summary.to_dict()}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to load shift summary")


@shifts_bp.post("/<int:shift_id>/close")
@require_tenant
def close_shift_route(shift_id: int):
    """
    Close a shift and record the cash variance.

    Request body:
    {
        "actual_cash": 795000,   // Cash counted in drawer (0 is a valid count)
        "notes": "Short 5000, change error"   (required when variance != 0)
    }

    Returns 409 (INVALID_STATE) if already closed, 400 if a variance is unexplained.
    """
    try:
        data = require_payload(request.get_json(silent=True), {"actual_cash"})
        shift = shift_service.close_shift(
            g.company_id,
            shift_id,
            data["actual_cash"],
            data.get("notes"),
            closed_by=g.user_id,
        )
        return jsonify({"shift": shift.to_dict()}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to close shift")


@shifts_bp.post("/<int:shift_id>/transactions")
@require_tenant
def record_transaction_route(shift_id: int):
    """
    Record a paid POS sale on an open shift.

    Request body:
    {
        "payment_method": "cash" | "card" | "transfer" | "e-wallet" | "credit" | "split",
        "total": 100000,
        "notes": "..."  (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True), {"payment_method", "total"})
        tx = transaction_recorder.record_transaction(
            g.company_id,
            shift_id,
            g.user_id,
            data["payment_method"],
            data["total"],
            notes=data.get("notes"),
        )
        return jsonify({"transaction": tx.to_dict()}), 201
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to record transaction")


@shifts_bp.post("/transactions/<int:transaction_id>/<action>")
@require_tenant
def update_transaction_status_route(transaction_id: int, action: str):
    """Cancel or refund a paid transaction (action: cancel | refund)."""
    try:
        if action == "cancel":
            tx = transaction_recorder.cancel_transaction(g.company_id, transaction_id)
        elif action == "refund":
            tx = transaction_recorder.refund_transaction(g.company_id, transaction_id)
        else:
            raise ValidationError("action must be cancel or refund", field="action")
        return jsonify({"transaction": tx.to_dict()}), 200
    except KasirError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        return _internal_error("Failed to update transaction")
