# Overview: Domain error kinds and their HTTP mapping.

"""
Error kinds raised by the service layer.

Routes translate these with error_response(). Tenant-scope and permission
failures deliberately share the NotFound response so a caller cannot tell
"belongs to another tenant" or "not allowed" apart from "does not exist".
"""

from __future__ import annotations


class PackdeskError(Exception):
    """Base class for expected, caller-facing failures."""
    status_code = 400
    public_message: str | None = None

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class Unauthenticated(PackdeskError):
    """No identity, or the identity token failed verification."""
    status_code = 401


class TenantResolutionError(PackdeskError):
    """No tenant could be derived from the identity or stored records."""
    status_code = 401


class CrossTenantAccess(PackdeskError):
    status_code = 404
    public_message = "Not found"


class InsufficientPermission(PackdeskError):
    """Raised when the resolved roles do not intersect the allowed roles."""
    status_code = 404
    public_message = "Not found"

    def __init__(self, message: str, required: list[str], actual: list[str]):
        super().__init__(message, details={"required_roles": list(required), "actual_roles": list(actual)})
        self.required = list(required)
        self.actual = list(actual)


class NotFound(PackdeskError):
    status_code = 404
    public_message = "Not found"


class ValidationError(PackdeskError):
    """400-level input problem."""
    status_code = 400


class ConflictError(PackdeskError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


class NegativeStockError(PackdeskError):
    status_code = 409


class InvalidTransition(PackdeskError):
    status_code = 409


class RateLimitExceeded(PackdeskError):
    status_code = 429


def error_response(exc: PackdeskError) -> tuple[dict, int]:
    """
    Build the JSON body and status for a domain error.

    Errors with a public_message hide their internal message and details.
    """
    if exc.public_message is not None:
        return {"error": exc.public_message}, exc.status_code

    body: dict = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return body, exc.status_code
