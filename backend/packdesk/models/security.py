from __future__ import annotations

from ..extensions import db
from packdesk.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Access-control audit log with tenant context.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_subject_type", "subject", "event_type"),
        db.Index("ix_security_events_tenant_occurred", "tenant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Tenant the caller asked for; nullable for pre-resolution failures
    tenant_id = db.Column(db.Integer, nullable=True, index=True)
    subject = db.Column(db.String(255), nullable=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # CROSS_TENANT_ACCESS_DENIED, PERMISSION_DENIED, ...
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "subject": self.subject,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class RateLimitBucket(db.Model):
    """Fixed-window request counter shared by every worker process."""
    __tablename__ = "rate_limit_buckets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False, unique=True, index=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    reset_at = db.Column(db.DateTime(timezone=True), nullable=False)
