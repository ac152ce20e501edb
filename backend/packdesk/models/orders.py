from __future__ import annotations

from ..extensions import db
from packdesk.time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order with a frozen financial snapshot.

    Totals are computed once at creation from the item snapshots
    (total_profit_cents = total_price_cents - total_cost_cents) and never
    recomputed. After creation only status, timestamps, packing and shipping
    metadata and notes change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        db.UniqueConstraint("tenant_id", "idempotency_key", name="uq_orders_tenant_idempotency"),
        db.Index("ix_orders_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    STATUSES = (PENDING, PAID, PROCESSING, SHIPPED, DELIVERED, CANCELLED)

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    order_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PENDING, index=True)
    idempotency_key = db.Column(db.String(128), nullable=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    recipient_name = db.Column(db.String(255), nullable=False)
    recipient_phone = db.Column(db.String(64), nullable=False)
    recipient_address = db.Column(db.String(500), nullable=False)
    recipient_city = db.Column(db.String(128), nullable=False)
    recipient_province = db.Column(db.String(128), nullable=False)
    recipient_postal_code = db.Column(db.String(32), nullable=False)
    recipient_country = db.Column(db.String(64), nullable=False)

    # Financial snapshot (owner-only)
    total_cost_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    total_profit_cents = db.Column(db.Integer, nullable=False)

    # Packing and shipping
    weight_grams = db.Column(db.Integer, nullable=True)
    shipping_cost_cents = db.Column(db.Integer, nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    label_url = db.Column(db.String(500), nullable=True)
    courier_service = db.Column(db.String(128), nullable=True)

    raw_text = db.Column(db.Text, nullable=True)  # free text the draft was extracted from
    notes = db.Column(db.Text, nullable=True)
    special_instructions = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    packed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.line_number",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "order_number": self.order_number,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "recipient_address": self.recipient_address,
            "recipient_city": self.recipient_city,
            "recipient_province": self.recipient_province,
            "recipient_postal_code": self.recipient_postal_code,
            "recipient_country": self.recipient_country,
            "items": [item.to_dict() for item in self.items],
            "total_cost_cents": self.total_cost_cents,
            "total_price_cents": self.total_price_cents,
            "total_profit_cents": self.total_profit_cents,
            "weight_grams": self.weight_grams,
            "shipping_cost_cents": self.shipping_cost_cents,
            "tracking_number": self.tracking_number,
            "label_url": self.label_url,
            "courier_service": self.courier_service,
            "raw_text": self.raw_text,
            "notes": self.notes,
            "special_instructions": self.special_instructions,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "paid_at": to_utc_z(self.paid_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_by_user_id": self.created_by_user_id,
            "packed_by_user_id": self.packed_by_user_id,
        }


class OrderItem(db.Model):
    """
    Line item snapshot taken at order creation.

    sku, name, unit price and unit cost are copies; later product edits or
    deletion never change them. product_id is kept as a plain reference.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_items_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
        }
