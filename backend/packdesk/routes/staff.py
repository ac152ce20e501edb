# Overview: Flask API routes for staff listing and role management.

"""Staff routes. Listing: owner, admin. Role changes and deactivation: owner."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PackdeskError, error_response
from ..services import user_service
from ..decorators import require_identity

staff_bp = Blueprint("staff", __name__, url_prefix="/api/tenants/<int:tenant_id>/staff")


@staff_bp.get("")
@require_identity
def list_staff(tenant_id: int):
    try:
        staff = user_service.list_staff(g.identity, tenant_id)
        return jsonify({"items": staff, "count": len(staff)})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list staff")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.post("/roles")
@require_identity
def assign_role(tenant_id: int):
    """Body: {"subject": str, "role": "admin" | "packer"}"""
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.assign_role(g.identity, tenant_id, data.get("subject"), data.get("role"))
        return jsonify({"user": user.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign role")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.post("/<int:user_id>/deactivate")
@require_identity
def deactivate_user(tenant_id: int, user_id: int):
    try:
        user = user_service.deactivate_user(g.identity, tenant_id, user_id)
        return jsonify({"user": user.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500
