from __future__ import annotations

from ..extensions import db
from packdesk.time_utils import to_utc_z


class Tenant(db.Model):
    """
    Multi-tenant root: every business account is a Tenant.

    All products, orders, users and stock movements belong to exactly one
    tenant. No data may cross tenant boundaries.

    owner_subject is the identity-provider subject of the recorded owner.
    It is the only thing that can justify the "owner" role.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)

    owner_subject = db.Column(db.String(255), nullable=False, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    identity_refs = db.relationship(
        "TenantIdentityRef",
        backref="tenant",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug!r}>"

    def external_org_ids(self) -> set[str]:
        return {ref.external_org_id for ref in self.identity_refs}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TenantIdentityRef(db.Model):
    """
    External identity-provider organization id stored for a tenant.

    A tenant may carry several: the current one, per-environment ids
    (prod/dev provider tenants) and ids kept for back-compat with older tokens.
    Any of them identifies the tenant.
    """
    __tablename__ = "tenant_identity_refs"
    __table_args__ = (
        db.UniqueConstraint("external_org_id", name="uq_tenant_identity_refs_external"),
        {"sqlite_autoincrement": True},
    )

    ENVIRONMENTS = ("default", "prod", "dev", "legacy")

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    external_org_id = db.Column(db.String(128), nullable=False)
    environment = db.Column(db.String(16), nullable=False, default="default")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "external_org_id": self.external_org_id,
            "environment": self.environment,
            "created_at": to_utc_z(self.created_at),
        }


class OrderSequence(db.Model):
    """
    Atomic per-tenant order number sequence.

    Order numbers come from this counter, never from counting existing orders,
    so concurrent creations cannot produce the same number.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", name="uq_order_sequences_tenant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
