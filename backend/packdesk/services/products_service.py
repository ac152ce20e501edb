# backend/packdesk/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- every call runs require_role for the tenant first
- products loaded by id must belong to that tenant (else NotFound)
- reads always return role views from packdesk.projections

STOCK: create_product records opening stock through the stock ledger as a
stock_in movement. update_product cannot touch stock_quantity.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Product, StockMovement
from ..permissions import roles_for
from ..projections import project_product, project_products
from ..validation import validate_product
from .concurrency import run_with_retry
from .identity_service import Identity
from .ledger_service import adjust_stock
from .permission_service import require_role
from .tenant_service import get_tenant_entity, scoped_query
from .user_service import actor_for


def _sku_taken(tenant_id: int, sku: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(Product.id).filter(Product.tenant_id == tenant_id, Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    return q.first() is not None


def list_products(identity: Identity, tenant_id: int, *, include_inactive: bool = False) -> list:
    """All tenant products ordered by name, projected for the caller's role."""
    ctx = require_role(identity, tenant_id, roles_for("VIEW_PRODUCTS"))

    q = scoped_query(Product, tenant_id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    products = q.order_by(Product.name.asc(), Product.id.asc()).all()
    return project_products(products, ctx.role)


def get_product(identity: Identity, tenant_id: int, product_id: int):
    ctx = require_role(identity, tenant_id, roles_for("VIEW_PRODUCTS"))
    product = get_tenant_entity(Product, product_id, tenant_id)
    return project_product(product, ctx.role)


def search_products(identity: Identity, tenant_id: int, term: str) -> list:
    """Case-insensitive substring match on name or SKU."""
    ctx = require_role(identity, tenant_id, roles_for("VIEW_PRODUCTS"))

    term = (term or "").strip()
    if not term:
        raise ValidationError("search term is required")
    pattern = f"%{term.lower()}%"
    products = (
        scoped_query(Product, tenant_id)
        .filter(
            or_(
                func.lower(Product.name).like(pattern),
                func.lower(Product.sku).like(pattern),
            )
        )
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    return project_products(products, ctx.role)


def low_stock(identity: Identity, tenant_id: int, threshold: int | None = None) -> list:
    """Active products with stock at or below threshold (LOW_STOCK_THRESHOLD by default)."""
    ctx = require_role(identity, tenant_id, roles_for("VIEW_LOW_STOCK"))

    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 0:
        raise ValidationError("threshold must be a non-negative integer")

    products = (
        scoped_query(Product, tenant_id)
        .filter(Product.is_active.is_(True), Product.stock_quantity <= threshold)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )
    return project_products(products, ctx.role)


def create_product(identity: Identity, tenant_id: int, payload: dict):
    """
    Create a product from a validated payload.

    An optional "stock_quantity" in the payload is the opening stock; it is
    written by the ledger as a stock_in movement, not assigned directly.

    Raises:
        ValidationError: bad payload or negative opening stock
        ConflictError: SKU already exists for this tenant
    """
    ctx = require_role(identity, tenant_id, roles_for("MANAGE_PRODUCTS"))

    payload = dict(payload or {})
    opening_stock = payload.pop("stock_quantity", 0)
    if opening_stock is None:
        opening_stock = 0
    if not isinstance(opening_stock, int) or isinstance(opening_stock, bool) or opening_stock < 0:
        raise ValidationError("stock_quantity must be a non-negative integer")

    patch = validate_product(payload, partial=False)

    def _op():
        if _sku_taken(tenant_id, patch["sku"]):
            raise ConflictError("SKU already exists for this tenant.")

        actor = actor_for(ctx)
        p = Product(tenant_id=tenant_id, stock_quantity=0, created_by_user_id=actor.user_id, **patch)
        p.profit_margin_cents = (p.price_cents or 0) - (p.cost_cents or 0)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the ledger write

        if opening_stock > 0:
            adjust_stock(
                tenant_id=tenant_id,
                product_id=p.id,
                delta=opening_stock,
                actor=actor,
                note="Opening stock",
                movement_type=StockMovement.STOCK_IN,
                commit=False,
            )

        db.session.commit()
        return p

    product = run_with_retry(_op)
    current_app.logger.info("Product created tenant_id=%s product_id=%s sku=%s", tenant_id, product.id, product.sku)
    return project_product(product, ctx.role)


def update_product(identity: Identity, tenant_id: int, product_id: int, payload: dict):
    """
    Patch product master data. stock_quantity is not writable here.

    Raises:
        NotFound: product missing or in another tenant
        ConflictError: new SKU already exists for this tenant
    """
    ctx = require_role(identity, tenant_id, roles_for("MANAGE_PRODUCTS"))
    patch = validate_product(payload, partial=True)

    def _op():
        p = get_tenant_entity(Product, product_id, tenant_id)

        if "sku" in patch and patch["sku"] != p.sku and _sku_taken(tenant_id, patch["sku"], exclude_id=p.id):
            raise ConflictError("SKU already exists for this tenant.")

        for key, value in patch.items():
            setattr(p, key, value)
        if "price_cents" in patch or "cost_cents" in patch:
            p.profit_margin_cents = (p.price_cents or 0) - (p.cost_cents or 0)

        db.session.commit()
        return p

    product = run_with_retry(_op)
    return project_product(product, ctx.role)


def delete_product(identity: Identity, tenant_id: int, product_id: int) -> None:
    """
    Delete a product.

    Order item snapshots and stock movements keep their own copies of the
    product id and SKU, so history survives the delete.
    """
    require_role(identity, tenant_id, roles_for("MANAGE_PRODUCTS"))

    def _op():
        p = get_tenant_entity(Product, product_id, tenant_id)
        db.session.delete(p)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Product deleted tenant_id=%s product_id=%s", tenant_id, product_id)
