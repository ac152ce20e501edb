from __future__ import annotations

from ..extensions import db
from packdesk.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to tenants via tenant_id and SKUs are
    unique within a tenant.

    STOCK: stock_quantity is written only by the stock ledger
    (services/ledger_service.py), which pairs every change with a
    StockMovement row in the same transaction. It is never negative.

    Money is stored in integer cents; cost and margin are owner-only fields.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_margin_cents = db.Column(db.Integer, nullable=False, default=0)  # price - cost

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    warehouse_location = db.Column(db.String(64), nullable=False)
    packing_instructions = db.Column(db.Text, nullable=True)

    weight_grams = db.Column(db.Integer, nullable=True)
    length_cm = db.Column(db.Float, nullable=True)
    width_cm = db.Column(db.Float, nullable=True)
    height_cm = db.Column(db.Float, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} tenant_id={self.tenant_id}>"

    def dimensions(self) -> dict:
        return {
            "weight_grams": self.weight_grams,
            "length_cm": self.length_cm,
            "width_cm": self.width_cm,
            "height_cm": self.height_cm,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "profit_margin_cents": self.profit_margin_cents,
            "stock_quantity": self.stock_quantity,
            "warehouse_location": self.warehouse_location,
            "packing_instructions": self.packing_instructions,
            **self.dimensions(),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Immutable record of one stock change.

    quantity_before + quantity_change == quantity_after, and the before/after
    values are the product's stock at the instant the change was applied.

    product_id is a plain reference (no FK) so the audit trail outlives
    product deletion; sku is snapshotted for the same reason.

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_tenant_created", "tenant_id", "created_at"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    ORDER_CREATED = "order_created"
    ORDER_CANCELLED = "order_cancelled"
    STOCK_ADJUSTMENT = "stock_adjustment"
    STOCK_IN = "stock_in"
    TYPES = (ORDER_CREATED, ORDER_CANCELLED, STOCK_ADJUSTMENT, STOCK_IN)

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)

    type = db.Column(db.String(32), nullable=False, index=True)

    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    actor_subject = db.Column(db.String(255), nullable=False)

    note = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "type": self.type,
            "quantity_before": self.quantity_before,
            "quantity_change": self.quantity_change,
            "quantity_after": self.quantity_after,
            "order_id": self.order_id,
            "actor_user_id": self.actor_user_id,
            "actor_subject": self.actor_subject,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
