# Overview: Flask API routes for the order lifecycle; parses input and returns role-projected JSON.

# backend/packdesk/routes/orders.py
"""
Order routes, scoped to the tenant in the URL.

Roles (enforced in the service layer):
- create / cancel / status: owner, admin
- pack / next-to-pack: packer
- shipping: owner, admin, packer
- reads: all roles, projected per role (packers see only paid/processing)
- reports: owner, admin

Creation accepts an Idempotency-Key header (or idempotency_key in the
body); a retry with the same key returns the original order.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PackdeskError, error_response
from ..services import order_service
from ..decorators import require_identity
from packdesk.time_utils import parse_range

orders_bp = Blueprint("orders", __name__, url_prefix="/api/tenants/<int:tenant_id>/orders")


def _items(views):
    return jsonify({"items": [v.to_dict() for v in views], "count": len(views)})


@orders_bp.get("")
@require_identity
def list_orders(tenant_id: int):
    """
    Query params:
    - status: one order status (optional)
    - start / end: ISO-8601 creation window, inclusive
    """
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
    except ValueError as e:
        return jsonify({"error": f"Invalid date range: {e}"}), 400

    try:
        views = order_service.list_orders(
            g.identity, tenant_id, status=request.args.get("status") or None, start=start, end=end
        )
        return _items(views)
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_identity
def create_order(tenant_id: int):
    payload = request.get_json(silent=True) or {}
    key = request.headers.get("Idempotency-Key")
    try:
        view = order_service.create_order(g.identity, tenant_id, payload, idempotency_key=key)
        return jsonify({"order": view.to_dict()}), 201
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/next")
@require_identity
def next_order(tenant_id: int):
    """Oldest paid order for the packer; {"order": null} when the queue is empty."""
    try:
        view = order_service.next_order_to_pack(g.identity, tenant_id)
        return jsonify({"order": view.to_dict() if view else None})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load next order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_identity
def get_order(tenant_id: int, order_id: int):
    try:
        view = order_service.get_order(g.identity, tenant_id, order_id)
        return jsonify({"order": view.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/pack")
@require_identity
def pack_order(tenant_id: int, order_id: int):
    """Body: {"weight_grams": int > 0}"""
    data = request.get_json(silent=True) or {}
    try:
        view = order_service.mark_packed(g.identity, tenant_id, order_id, data.get("weight_grams"))
        return jsonify({"order": view.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to pack order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/shipping")
@require_identity
def update_shipping(tenant_id: int, order_id: int):
    """Body: any of tracking_number, label_url, courier_service, shipping_cost_cents, weight_grams"""
    payload = request.get_json(silent=True) or {}
    try:
        view = order_service.update_shipping(g.identity, tenant_id, order_id, payload)
        return jsonify({"order": view.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update shipping")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/status")
@require_identity
def update_status(tenant_id: int, order_id: int):
    """Body: {"status": str, "reason": str?}"""
    data = request.get_json(silent=True) or {}
    try:
        view = order_service.update_status(
            g.identity, tenant_id, order_id, data.get("status"), reason=data.get("reason")
        )
        return jsonify({"order": view.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_identity
def cancel_order(tenant_id: int, order_id: int):
    """Body: {"reason": str?}"""
    data = request.get_json(silent=True) or {}
    try:
        view = order_service.cancel_order(g.identity, tenant_id, order_id, data.get("reason"))
        return jsonify({"order": view.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/reports/by-product/<int:product_id>")
@require_identity
def orders_by_product(tenant_id: int, product_id: int):
    try:
        return _items(order_service.orders_by_product(g.identity, tenant_id, product_id))
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load orders by product")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/reports/by-packer/<int:user_id>")
@require_identity
def orders_by_packer(tenant_id: int, user_id: int):
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
    except ValueError as e:
        return jsonify({"error": f"Invalid date range: {e}"}), 400

    try:
        return _items(order_service.orders_by_packer(g.identity, tenant_id, user_id, start=start, end=end))
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load orders by packer")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/reports/by-creator/<int:user_id>")
@require_identity
def orders_by_creator(tenant_id: int, user_id: int):
    try:
        start, end = parse_range(request.args.get("start"), request.args.get("end"))
    except ValueError as e:
        return jsonify({"error": f"Invalid date range: {e}"}), 400

    try:
        return _items(order_service.orders_by_creator(g.identity, tenant_id, user_id, start=start, end=end))
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load orders by creator")
        return jsonify({"error": "Internal server error"}), 500
