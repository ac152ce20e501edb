"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

SECURITY INVARIANTS:
1. The tenant an identity acts in is always the resolver's answer, never a
   client-supplied id taken on trust
2. Entities loaded by id are checked against the resolved tenant before use
3. Cross-tenant attempts are logged as security events and surface to the
   caller exactly like "not found"

USAGE:
    from packdesk.services.tenant_service import require_tenant_access, get_tenant_entity

    require_tenant_access(g.identity, tenant_id)
    product = get_tenant_entity(Product, product_id, tenant_id)
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import CrossTenantAccess, NotFound, TenantResolutionError
from ..models import TenantIdentityRef
from .identity_service import Identity
from .identity_resolver import resolve_tenant
from .permission_service import log_security_event


def require_tenant_access(identity: Identity | None, tenant_id: int) -> int:
    """
    Require that the identity resolves to tenant_id.

    Missing claims, legacy claim encodings and tenants with several stored
    provider org ids are all handled by the resolver's strategy chain.

    Raises:
        Unauthenticated if identity is None
        TenantResolutionError if no tenant can be derived
        CrossTenantAccess if the resolved tenant differs from tenant_id
    """
    try:
        resolved = resolve_tenant(identity)
    except TenantResolutionError as e:
        log_security_event(
            subject=identity.subject,
            event_type="TENANT_RESOLUTION_FAILED",
            success=False,
            reason=str(e),
            tenant_id=tenant_id,
        )
        raise

    if resolved != tenant_id:
        current_app.logger.warning(
            "Unauthorized tenant access attempt subject=%s resolved=%s requested=%s",
            identity.subject,
            resolved,
            tenant_id,
        )
        log_security_event(
            subject=identity.subject,
            event_type="CROSS_TENANT_ACCESS_DENIED",
            success=False,
            reason=f"Identity resolves to tenant {resolved}, not {tenant_id}",
            tenant_id=tenant_id,
        )
        raise CrossTenantAccess("Cannot access another tenant's data")

    return resolved


def get_tenant_entity(model, entity_id: int, tenant_id: int, *, query=None):
    """
    Load model row entity_id and require it to belong to tenant_id.

    A row owned by another tenant raises NotFound, same as a missing row,
    so tenant existence cannot be inferred.
    """
    q = query if query is not None else db.session.query(model)
    entity = q.filter(model.id == entity_id).first()
    if entity is None or entity.tenant_id != tenant_id:
        raise NotFound(f"{model.__name__} not found")
    return entity


def scoped_query(model, tenant_id: int):
    """Base query filtered to one tenant's rows."""
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def add_identity_ref(tenant_id: int, external_org_id: str, environment: str = "default") -> TenantIdentityRef:
    """
    Store a provider organization id for a tenant.

    Idempotent for the same tenant; an id already bound to a different
    tenant is refused.
    """
    if environment not in TenantIdentityRef.ENVIRONMENTS:
        raise ValueError(f"environment must be one of {', '.join(TenantIdentityRef.ENVIRONMENTS)}")

    external_org_id = external_org_id.strip()
    existing = db.session.query(TenantIdentityRef).filter_by(external_org_id=external_org_id).first()
    if existing is not None:
        if existing.tenant_id != tenant_id:
            raise ValueError("external org id already belongs to another tenant")
        return existing

    ref = TenantIdentityRef(tenant_id=tenant_id, external_org_id=external_org_id, environment=environment)
    db.session.add(ref)
    db.session.commit()
    return ref
