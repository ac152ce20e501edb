# Overview: Derives the caller's tenant and role set from identity claims and stored records.

"""
Identity Resolution

Tenant resolution is an ordered list of strategies. Each one attempts a
single resolution path and returns a tenant id or None ("no match"); the
resolver stops at the first match. Adding or retiring a claim format is a
change to DEFAULT_STRATEGIES.

Order:
1. CurrentTenantClaim   - {ns}tenantId, existence-checked
2. LegacyTenantClaim    - {ns}orgId holding an old internal id, normalized
3. ExternalOrgClaim     - provider org id matched against any stored ref
4. UserLinkRecord       - stored user -> tenant link (only without claims)
5. OwnerRecord          - caller is the recorded owner (only without claims)

Record fallbacks never override a token that names a tenant: a token whose
tenant claims all fail to match is rejected, not silently re-homed.

Every strategy is read-only. Inactive tenants never resolve.
"""

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..errors import Unauthenticated, TenantResolutionError
from ..models import Tenant, TenantIdentityRef, User
from ..permissions import OWNER, ASSIGNABLE_ROLES, normalize_roles
from .identity_service import Identity, EXTERNAL_ORG_PREFIX

_LEGACY_TENANT_REF = re.compile(r"(?:tenants?[:|_]|tnt_)?(\d+)", re.IGNORECASE)


def _active_tenant_id(tenant_id: int) -> int | None:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None or not tenant.is_active:
        return None
    return tenant.id


def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def normalize_legacy_tenant_ref(value) -> int | None:
    """
    Normalize a back-compat tenant reference to a tenant id.

    Accepts a bare id (42, "42") and the prefixed forms older tokens used
    ("tenant:42", "tenants|42", "tnt_42"). Returns None for anything else.
    """
    direct = _as_int(value)
    if direct is not None:
        return direct
    if not isinstance(value, str):
        return None
    match = _LEGACY_TENANT_REF.fullmatch(value.strip())
    if not match:
        return None
    return _as_int(match.group(1))


class ResolutionStrategy:
    """One way of deriving a tenant id. Returns None when it does not apply or finds nothing."""
    name = "strategy"

    def resolve(self, identity: Identity) -> int | None:
        raise NotImplementedError


class CurrentTenantClaim(ResolutionStrategy):
    name = "tenant_claim"

    def resolve(self, identity):
        tenant_id = _as_int(identity.tenant_claim)
        if tenant_id is None:
            return None
        return _active_tenant_id(tenant_id)


class LegacyTenantClaim(ResolutionStrategy):
    name = "legacy_tenant_claim"

    def resolve(self, identity):
        raw = identity.org_claim
        if raw is None:
            return None
        if isinstance(raw, str) and raw.startswith(EXTERNAL_ORG_PREFIX):
            return None
        tenant_id = normalize_legacy_tenant_ref(raw)
        if tenant_id is None:
            return None
        return _active_tenant_id(tenant_id)


class ExternalOrgClaim(ResolutionStrategy):
    """Match provider org ids against every stored variant (default/prod/dev/legacy)."""
    name = "external_org_claim"

    def resolve(self, identity):
        candidates = set()
        org_claim = identity.org_claim
        if isinstance(org_claim, str) and org_claim.startswith(EXTERNAL_ORG_PREFIX):
            candidates.add(org_claim)
        if identity.provider_org_claim:
            candidates.add(identity.provider_org_claim)
        if not candidates:
            return None

        rows = (
            db.session.query(TenantIdentityRef.tenant_id)
            .join(Tenant, Tenant.id == TenantIdentityRef.tenant_id)
            .filter(
                TenantIdentityRef.external_org_id.in_(candidates),
                Tenant.is_active.is_(True),
            )
            .distinct()
            .all()
        )
        tenant_ids = {row.tenant_id for row in rows}
        # Two claims naming two different tenants is not a match
        if len(tenant_ids) != 1:
            return None
        return tenant_ids.pop()


class UserLinkRecord(ResolutionStrategy):
    name = "user_link"

    def resolve(self, identity):
        if identity.has_tenant_claim:
            return None
        user = db.session.query(User).filter_by(subject=identity.subject).first()
        if user is None or not user.is_active or user.tenant_id is None:
            return None
        return _active_tenant_id(user.tenant_id)


class OwnerRecord(ResolutionStrategy):
    name = "owner_record"

    def resolve(self, identity):
        if identity.has_tenant_claim:
            return None
        tenant = (
            db.session.query(Tenant)
            .filter_by(owner_subject=identity.subject, is_active=True)
            .order_by(Tenant.id.asc())
            .first()
        )
        return tenant.id if tenant else None


DEFAULT_STRATEGIES = (
    CurrentTenantClaim(),
    LegacyTenantClaim(),
    ExternalOrgClaim(),
    UserLinkRecord(),
    OwnerRecord(),
)


class IdentityResolver:
    def __init__(self, strategies=None):
        self.strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES

    def resolve_tenant(self, identity: Identity | None) -> int:
        """
        Canonical tenant id for an identity.

        Raises Unauthenticated if identity is None, TenantResolutionError if
        no strategy matches.
        """
        if identity is None:
            raise Unauthenticated("Authentication required")

        for strategy in self.strategies:
            tenant_id = strategy.resolve(identity)
            if tenant_id is not None:
                return tenant_id

        current_app.logger.warning(
            "Tenant resolution failed subject=%s strategies=%s",
            identity.subject,
            ",".join(s.name for s in self.strategies),
        )
        raise TenantResolutionError("No tenant found for this identity. Please re-login.")

    def resolve_roles(self, identity: Identity | None) -> list[str]:
        """
        Ordered role list for an identity.

        Claimed roles come first, followed by any role the stored records
        back (recorded owner, linked user's role). The owner role survives only if
        the caller is the resolved tenant's recorded owner; a deactivated user
        record yields no roles at all.
        """
        if identity is None:
            raise Unauthenticated("Authentication required")

        try:
            tenant = db.session.get(Tenant, self.resolve_tenant(identity))
        except TenantResolutionError:
            tenant = None

        user = db.session.query(User).filter_by(subject=identity.subject).first()
        if user is not None and not user.is_active:
            return []

        roles = normalize_roles(identity.role_claim)
        for role in self._roles_from_records(identity, tenant, user):
            if role not in roles:
                roles.append(role)

        if OWNER in roles and (tenant is None or tenant.owner_subject != identity.subject):
            current_app.logger.warning(
                "Stripped unbacked owner claim subject=%s tenant_id=%s",
                identity.subject,
                tenant.id if tenant else None,
            )
            roles = [role for role in roles if role != OWNER]

        return roles

    @staticmethod
    def _roles_from_records(identity: Identity, tenant: Tenant | None, user: User | None) -> list[str]:
        if tenant is None:
            return []
        roles = []
        if tenant.owner_subject == identity.subject:
            roles.append(OWNER)
        if user is not None and user.tenant_id == tenant.id and user.role in ASSIGNABLE_ROLES:
            roles.append(user.role)
        return roles


default_resolver = IdentityResolver()


def resolve_tenant(identity: Identity | None) -> int:
    return default_resolver.resolve_tenant(identity)


def resolve_roles(identity: Identity | None) -> list[str]:
    return default_resolver.resolve_roles(identity)
