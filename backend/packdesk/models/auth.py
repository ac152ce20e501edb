from __future__ import annotations

from ..extensions import db
from packdesk.time_utils import to_utc_z


class User(db.Model):
    """
    A person known by their identity-provider subject.

    A user belongs to at most one tenant (tenant_id is the stored
    user -> tenant link) and holds at most one role in it. The owner role is
    never stored here; it is derived from Tenant.owner_subject.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_tenant_role", "tenant_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    subject = db.Column(db.String(255), nullable=False, unique=True, index=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)
    role = db.Column(db.String(16), nullable=True)

    email = db.Column(db.String(255), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    username = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", foreign_keys=[tenant_id], backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} subject={self.subject!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subject": self.subject,
            "tenant_id": self.tenant_id,
            "role": self.role,
            "email": self.email,
            "name": self.name,
            "username": self.username,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
