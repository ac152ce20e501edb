# Overview: Flask API route describing the caller's resolved session.

from flask import Blueprint, jsonify, g, current_app

from ..errors import PackdeskError, error_response
from ..services.session_service import session_metadata
from ..decorators import require_identity

session_bp = Blueprint("session", __name__, url_prefix="/api/session")


@session_bp.get("")
@require_identity
def current_session():
    """
    Tenant, roles, effective role and MFA flag for the bearer token.

    Clients use this to pick the tenant id for subsequent calls.
    """
    try:
        return jsonify(session_metadata(g.identity))
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resolve session")
        return jsonify({"error": "Internal server error"}), 500
