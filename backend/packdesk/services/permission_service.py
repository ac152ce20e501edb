# Overview: Role enforcement and security event logging with tenant context.

"""
Role Checking and Security Event Logging

DESIGN PRINCIPLES:
- Fail closed: deny unless a resolved role is in the allowed set
- Tenant first: require_role always runs require_tenant_access before looking
  at roles, so a role claim alone never grants access to another tenant
- Log denials only: grants are not logged
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app, has_request_context, request

from ..extensions import db
from ..errors import InsufficientPermission
from ..models import SecurityEvent
from ..permissions import effective_role
from .identity_service import Identity
from .identity_resolver import resolve_roles
from packdesk.time_utils import utcnow


@dataclass(frozen=True)
class AccessContext:
    """Outcome of a successful require_role: who, which tenant, which roles."""
    identity: Identity
    tenant_id: int
    roles: list[str] = field(default_factory=list)

    @property
    def role(self) -> str | None:
        """Effective role used for response projection."""
        return effective_role(self.roles)

    @property
    def subject(self) -> str:
        return self.identity.subject


def log_security_event(
    subject: str | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    tenant_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event with tenant context and commit it.

    Client address and user agent are taken from the active request, if any.

    event_type examples:
    - CROSS_TENANT_ACCESS_DENIED
    - PERMISSION_DENIED
    - TENANT_RESOLUTION_FAILED
    - RATE_LIMITED
    """
    ip_address = None
    user_agent = None
    if has_request_context():
        resource = resource or request.path
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    event = SecurityEvent(
        subject=subject,
        tenant_id=tenant_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def require_role(identity: Identity | None, tenant_id: int, allowed_roles) -> AccessContext:
    """
    Require tenant access and at least one of allowed_roles.

    Raises Unauthenticated / TenantResolutionError / CrossTenantAccess from the
    tenant check, then InsufficientPermission (carrying required vs. actual
    roles) if the resolved roles miss every allowed role.

    Usage:
        ctx = require_role(g.identity, tenant_id, roles_for("CREATE_ORDER"))
    """
    from .tenant_service import require_tenant_access

    require_tenant_access(identity, tenant_id)

    roles = resolve_roles(identity)
    allowed = list(allowed_roles)
    if not any(role in roles for role in allowed):
        current_app.logger.warning(
            "Insufficient permissions subject=%s tenant_id=%s required=%s actual=%s",
            identity.subject,
            tenant_id,
            allowed,
            roles,
        )
        log_security_event(
            subject=identity.subject,
            event_type="PERMISSION_DENIED",
            success=False,
            action=f"ANY_OF:{','.join(allowed)}",
            reason=f"Required any of: {', '.join(allowed)}; had: {', '.join(roles) or 'none'}",
            tenant_id=tenant_id,
        )
        raise InsufficientPermission(
            f"Insufficient permissions. Required: {' or '.join(allowed)}",
            required=allowed,
            actual=roles,
        )

    return AccessContext(identity=identity, tenant_id=tenant_id, roles=roles)
