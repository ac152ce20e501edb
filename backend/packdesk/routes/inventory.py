# Overview: Flask API routes for stock adjustments and the movement history.

# backend/packdesk/routes/inventory.py
"""
Inventory routes (owner only, except stock level which any role can read).

All stock writes go through the stock ledger; each returns the movement
that recorded it.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PackdeskError, error_response
from ..services import inventory_service
from ..decorators import require_identity
from packdesk.time_utils import parse_range

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/tenants/<int:tenant_id>/inventory")


@inventory_bp.post("/<int:product_id>/adjust")
@require_identity
def adjust(tenant_id: int, product_id: int):
    """
    Manual stock correction.

    Body: {"delta": int != 0, "note": str?}
    """
    data = request.get_json(silent=True) or {}
    try:
        movement = inventory_service.manual_adjust(
            g.identity, tenant_id, product_id, data.get("delta"), note=data.get("note")
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/receive")
@require_identity
def receive(tenant_id: int, product_id: int):
    """
    Restock.

    Body: {"quantity": int > 0, "note": str?}
    """
    data = request.get_json(silent=True) or {}
    try:
        movement = inventory_service.receive_stock(
            g.identity, tenant_id, product_id, data.get("quantity"), note=data.get("note")
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/stock")
@require_identity
def stock(tenant_id: int, product_id: int):
    try:
        level = inventory_service.stock_level(g.identity, tenant_id, product_id)
        return jsonify({"product_id": product_id, "stock_quantity": level})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock level")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
@require_identity
def movements(tenant_id: int):
    """
    Movement history, newest first.

    Query params:
    - product_id: int (optional)
    - type: order_created | order_cancelled | stock_adjustment | stock_in
    - start / end: ISO-8601, inclusive
    - limit: int (default 100, max 1000)
    """
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
    except ValueError as e:
        return jsonify({"error": f"Invalid date range: {e}"}), 400

    try:
        rows = inventory_service.list_movements(
            g.identity,
            tenant_id,
            product_id=request.args.get("product_id", type=int),
            start=start,
            end=end,
            movement_type=request.args.get("type") or None,
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({"items": [m.to_dict() for m in rows], "count": len(rows)})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements/stats")
@require_identity
def movement_stats(tenant_id: int):
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
    except ValueError as e:
        return jsonify({"error": f"Invalid date range: {e}"}), 400

    try:
        stats = inventory_service.movement_stats(
            g.identity,
            tenant_id,
            product_id=request.args.get("product_id", type=int),
            start=start,
            end=end,
        )
        return jsonify(stats)
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute movement stats")
        return jsonify({"error": "Internal server error"}), 500
