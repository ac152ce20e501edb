# Overview: Request authentication decorator for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import Unauthenticated
from .services.identity_service import decode_identity


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_identity(f):
    """
    Require a valid identity token.

    Sets g.identity to the verified Identity. Tenant and role checks are not
    done here: every service call runs require_role against the tenant in
    the URL, so a valid token alone grants nothing.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or wrongly signed token
    - Token has no subject
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.identity = decode_identity(bearer_token())
        except Unauthenticated as e:
            return jsonify({"error": str(e)}), 401

        return f(*args, **kwargs)

    return decorated_function
