# Overview: What the current identity resolves to, for client bootstrapping.

from __future__ import annotations

from ..errors import TenantResolutionError
from ..permissions import effective_role
from .identity_service import Identity
from .identity_resolver import resolve_roles, resolve_tenant


def session_metadata(identity: Identity) -> dict:
    """
    Resolved tenant, roles, effective role and MFA flag for an identity.

    An identity that resolves to no tenant (e.g. a fresh signup before
    onboarding) gets tenant_id None and no roles rather than an error.
    """
    try:
        tenant_id = resolve_tenant(identity)
    except TenantResolutionError:
        tenant_id = None

    roles = resolve_roles(identity) if tenant_id is not None else []
    return {
        "subject": identity.subject,
        "tenant_id": tenant_id,
        "roles": roles,
        "role": effective_role(roles),
        "mfa_enrolled": identity.mfa_enrolled,
    }
