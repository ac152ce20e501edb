# Overview: The stock ledger; the only writer of Product.stock_quantity.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, update

from ..extensions import db
from ..errors import NegativeStockError, NotFound, ValidationError
from ..models import Product, StockMovement
from .concurrency import run_with_retry
from packdesk.time_utils import utcnow
"""
Stock Ledger Invariants (authoritative)

- Product.stock_quantity is never negative.
- Every stock write is paired, in the same DB transaction, with exactly one
  StockMovement whose before/after values are the product's stock at that
  instant. Nothing else in the codebase assigns stock_quantity.
- The read-check-write is a single conditional UPDATE
  (stock + delta >= 0). Concurrent writers of the same product serialize on
  the row; a writer that would go negative matches zero rows and fails.
- A reservation is all-or-nothing: every line runs in the caller's
  transaction and any failure rolls back all of them.
- StockMovement rows are append-only (no updates/deletes).
- Shipment never moves stock.
"""


@dataclass(frozen=True)
class Actor:
    """Who caused a stock change, as recorded on the movement."""
    subject: str
    user_id: int | None = None


@dataclass(frozen=True)
class StockLine:
    product_id: int
    quantity: int


def _product_in_tenant(tenant_id: int, product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.tenant_id != tenant_id:
        raise NotFound("Product not found")
    return product


def _current_stock(product_id: int) -> int | None:
    return (
        db.session.query(Product.stock_quantity)
        .filter(Product.id == product_id)
        .scalar()
    )


def _apply_delta(
    *,
    tenant_id: int,
    product_id: int,
    delta: int,
    actor: Actor,
    movement_type: str,
    note: str | None = None,
    order_id: int | None = None,
) -> StockMovement:
    """Write one stock change and its movement inside the current transaction."""
    if movement_type not in StockMovement.TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("quantity change must be a non-zero integer")

    product = _product_in_tenant(tenant_id, product_id)

    result = db.session.execute(
        update(Product)
        .where(
            Product.id == product_id,
            Product.tenant_id == tenant_id,
            Product.stock_quantity + delta >= 0,
        )
        .values(
            stock_quantity=Product.stock_quantity + delta,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = _current_stock(product_id)
        raise NegativeStockError(
            f"Insufficient stock for {product.sku}: {available} on hand, change {delta}",
            details={"product_id": product_id, "sku": product.sku, "available": available, "change": delta},
        )

    after = _current_stock(product_id)
    # The in-session instance is stale after the bulk UPDATE
    db.session.expire(product, ["stock_quantity", "version_id", "updated_at"])

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product_id,
        sku=product.sku,
        type=movement_type,
        quantity_before=after - delta,
        quantity_change=delta,
        quantity_after=after,
        order_id=order_id,
        actor_user_id=actor.user_id,
        actor_subject=actor.subject,
        note=note,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(
    *,
    tenant_id: int,
    product_id: int,
    delta: int,
    actor: Actor,
    note: str | None = None,
    movement_type: str = StockMovement.STOCK_ADJUSTMENT,
    order_id: int | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Apply a signed stock change and append its movement.

    Raises NegativeStockError if the change would take stock below zero, in
    which case nothing is written. With commit=False the change joins the
    caller's transaction and the caller commits or rolls back.
    """
    def _op() -> StockMovement:
        movement = _apply_delta(
            tenant_id=tenant_id,
            product_id=product_id,
            delta=delta,
            actor=actor,
            movement_type=movement_type,
            note=note,
            order_id=order_id,
        )
        if commit:
            db.session.commit()
        return movement

    if not commit:
        return _op()
    return run_with_retry(_op)


def _normalize_lines(items) -> list[StockLine]:
    lines = []
    for item in items:
        if isinstance(item, StockLine):
            line = item
        elif isinstance(item, dict):
            line = StockLine(product_id=item.get("product_id"), quantity=item.get("quantity"))
        else:
            line = StockLine(product_id=item.product_id, quantity=item.quantity)
        if not isinstance(line.product_id, int) or isinstance(line.product_id, bool):
            raise ValidationError("item product_id must be an integer")
        if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity <= 0:
            raise ValidationError("item quantity must be a positive integer")
        lines.append(line)
    if not lines:
        raise ValidationError("at least one item is required")
    return lines


def reserve_for_order(
    *,
    tenant_id: int,
    items,
    actor: Actor,
    order_id: int | None = None,
    note: str | None = None,
    commit: bool = False,
) -> list[StockMovement]:
    """
    Decrement stock for every line as one all-or-nothing set.

    items: StockLine objects, order items, or dicts with product_id/quantity.
    Lines are applied in product id order so concurrent reservations touch
    rows in the same order. If any line would go negative the exception
    propagates and the whole transaction is rolled back by the caller
    (or here, when commit=True).
    """
    lines = _normalize_lines(items)

    def _op() -> list[StockMovement]:
        movements = [
            _apply_delta(
                tenant_id=tenant_id,
                product_id=line.product_id,
                delta=-line.quantity,
                actor=actor,
                movement_type=StockMovement.ORDER_CREATED,
                note=note,
                order_id=order_id,
            )
            for line in sorted(lines, key=lambda l: l.product_id)
        ]
        if commit:
            db.session.commit()
        return movements

    if not commit:
        return _op()
    return run_with_retry(_op)


def restore_for_order(
    *,
    tenant_id: int,
    items,
    actor: Actor,
    reason: str | None = None,
    order_id: int | None = None,
    commit: bool = False,
) -> list[StockMovement]:
    """
    Inverse of reserve_for_order, used on cancellation.

    Additive deltas cannot fail the negative-stock check. Lines whose product
    has since been deleted are skipped: there is no stock left to restore to.
    """
    lines = _normalize_lines(items)

    def _op() -> list[StockMovement]:
        movements = []
        for line in sorted(lines, key=lambda l: l.product_id):
            if db.session.get(Product, line.product_id) is None:
                continue
            movements.append(
                _apply_delta(
                    tenant_id=tenant_id,
                    product_id=line.product_id,
                    delta=line.quantity,
                    actor=actor,
                    movement_type=StockMovement.ORDER_CANCELLED,
                    note=reason,
                    order_id=order_id,
                )
            )
        if commit:
            db.session.commit()
        return movements

    if not commit:
        return _op()
    return run_with_retry(_op)


def get_stock_level(tenant_id: int, product_id: int) -> int:
    """Current stock for a product in tenant_id. Pure read."""
    stock = (
        db.session.query(Product.stock_quantity)
        .filter(Product.id == product_id, Product.tenant_id == tenant_id)
        .scalar()
    )
    if stock is None:
        raise NotFound("Product not found")
    return int(stock)


def _movement_query(
    tenant_id: int,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    movement_type: str | None = None,
):
    q = db.session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type is not None:
        q = q.filter(StockMovement.type == movement_type)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)
    return q


def list_movements(
    tenant_id: int,
    *,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    movement_type: str | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    """Movements newest first. Date bounds are inclusive."""
    limit = max(1, min(int(limit), 1000))
    return (
        _movement_query(tenant_id, product_id, start, end, movement_type)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def movement_stats(
    tenant_id: int,
    *,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """
    Summary over a movement window.

    Returns:
        {"total_movements", "by_type": {type: count}, "total_in", "total_out"}
        where total_out is reported as a positive number of units.
    """
    base = _movement_query(tenant_id, product_id, start, end).subquery()

    by_type = {movement_type: 0 for movement_type in StockMovement.TYPES}
    rows = db.session.query(base.c.type, func.count(base.c.id)).group_by(base.c.type).all()
    for movement_type, count in rows:
        by_type[movement_type] = int(count)

    total_in, total_out = db.session.query(
        func.coalesce(func.sum(case((base.c.quantity_change > 0, base.c.quantity_change), else_=0)), 0),
        func.coalesce(func.sum(case((base.c.quantity_change < 0, -base.c.quantity_change), else_=0)), 0),
    ).one()

    return {
        "total_movements": sum(by_type.values()),
        "by_type": by_type,
        "total_in": int(total_in),
        "total_out": int(total_out),
    }
