# Overview: User records and staff management within a tenant.

"""
Staff Management

A User row is keyed by the identity-provider subject. ensure_user_record
creates it on first use for auditing (created_by / packed_by / movement
actor) and never links it to a tenant. Linking happens only when the
tenant owner assigns a role.

The owner role is never stored on a User: it follows Tenant.owner_subject.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import Tenant, User
from ..permissions import ASSIGNABLE_ROLES, roles_for
from .concurrency import run_with_retry
from .identity_service import Identity
from .ledger_service import Actor
from .permission_service import AccessContext, require_role


def ensure_user_record(identity: Identity) -> User:
    """
    Return the User row for identity.subject, creating it if missing.

    Joins the caller's transaction (flush only, no commit).
    """
    user = db.session.query(User).filter_by(subject=identity.subject).first()
    if user is not None:
        return user

    email = identity.claims.get("email")
    user = User(
        subject=identity.subject,
        email=email if isinstance(email, str) else None,
        name=identity.claims.get("name") if isinstance(identity.claims.get("name"), str) else None,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    return user


def actor_for(ctx: AccessContext) -> Actor:
    """Ledger actor for an authorized caller, with its audit user row."""
    user = ensure_user_record(ctx.identity)
    return Actor(subject=ctx.subject, user_id=user.id)


def list_staff(identity: Identity, tenant_id: int) -> list[dict]:
    """Users linked to the tenant, plus the recorded owner's subject flagged as owner."""
    require_role(identity, tenant_id, roles_for("VIEW_STAFF"))

    tenant = db.session.get(Tenant, tenant_id)
    users = (
        db.session.query(User)
        .filter(User.tenant_id == tenant_id)
        .order_by(User.id.asc())
        .all()
    )
    staff = []
    for user in users:
        row = user.to_dict()
        row["is_owner"] = user.subject == tenant.owner_subject
        staff.append(row)
    return staff


def assign_role(identity: Identity, tenant_id: int, subject: str, role: str) -> User:
    """
    Link the user with `subject` to the tenant and give them `role`.

    Only admin and packer can be assigned. A user already linked to another
    tenant is reported as not found.
    """
    ctx = require_role(identity, tenant_id, roles_for("MANAGE_STAFF"))

    role = (role or "").strip().lower()
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(sorted(ASSIGNABLE_ROLES))}")
    subject = (subject or "").strip()
    if not subject:
        raise ValidationError("subject is required")

    def _op() -> User:
        tenant = db.session.get(Tenant, tenant_id)
        if subject == tenant.owner_subject:
            raise ValidationError("The tenant owner's role cannot be changed")

        user = db.session.query(User).filter_by(subject=subject).first()
        if user is None:
            user = User(subject=subject, is_active=True)
            db.session.add(user)
        elif user.tenant_id is not None and user.tenant_id != tenant_id:
            raise NotFound("User not found")

        user.tenant_id = tenant_id
        user.role = role
        db.session.commit()
        return user

    user = run_with_retry(_op)
    current_app.logger.info(
        "Role assigned tenant_id=%s subject=%s role=%s by=%s", tenant_id, subject, role, ctx.subject
    )
    return user


def deactivate_user(identity: Identity, tenant_id: int, user_id: int) -> User:
    """Deactivate a staff member. A deactivated user resolves no roles."""
    ctx = require_role(identity, tenant_id, roles_for("MANAGE_STAFF"))

    def _op() -> User:
        user = db.session.get(User, user_id)
        if user is None or user.tenant_id != tenant_id:
            raise NotFound("User not found")
        if user.subject == ctx.subject:
            raise ValidationError("You cannot deactivate yourself")

        user.is_active = False
        db.session.commit()
        return user

    user = run_with_retry(_op)
    current_app.logger.info("User deactivated tenant_id=%s user_id=%s by=%s", tenant_id, user_id, ctx.subject)
    return user
