# Overview: Order lifecycle, financial snapshots and ledger-triggering transitions.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import Order, OrderItem, OrderSequence, Product, User
from ..permissions import PACKER, roles_for
from ..projections import project_order, project_orders
from ..validation import validate_order, validate_shipping
from .concurrency import lock_for_update, run_with_retry
from .identity_service import Identity
from .ledger_service import reserve_for_order, restore_for_order
from .permission_service import require_role
from .rate_limit_service import enforce_order_create_limit
from .tenant_service import get_tenant_entity, scoped_query
from .user_service import actor_for
from packdesk.time_utils import utcnow
"""
Order Invariants (authoritative)

Lifecycle:
    pending -> paid -> processing -> shipped -> delivered
    pending | paid | processing -> cancelled
delivered and cancelled are terminal. Anything else is InvalidTransition.

- create() reserves stock for every line in the same transaction that
  inserts the order; if any line is short, no order row and no movement
  exist afterwards.
- Line items snapshot sku, name, unit price and unit cost at creation.
- total_profit_cents = total_price_cents - total_cost_cents, fixed at
  creation and never recomputed.
- cancel() restores exactly the reserved quantities through the ledger.
- Shipping never moves stock.
- Order numbers come from the tenant's OrderSequence counter, never from a
  count of existing orders.
- A create() carrying an idempotency key returns the existing order on
  retry instead of reserving twice.
"""

TRANSITIONS: dict[str, frozenset[str]] = {
    Order.PENDING: frozenset({Order.PAID, Order.CANCELLED}),
    Order.PAID: frozenset({Order.PROCESSING, Order.CANCELLED}),
    Order.PROCESSING: frozenset({Order.SHIPPED, Order.CANCELLED}),
    Order.SHIPPED: frozenset({Order.DELIVERED}),
    Order.DELIVERED: frozenset(),
    Order.CANCELLED: frozenset(),
}

# Status -> timestamp column stamped on entry
_STATUS_TIMESTAMPS = {
    Order.PAID: "paid_at",
    Order.SHIPPED: "shipped_at",
    Order.DELIVERED: "delivered_at",
    Order.CANCELLED: "cancelled_at",
}

# What a packer may see in list_orders: the packing queue
PACKER_VISIBLE_STATUSES = (Order.PAID, Order.PROCESSING)

ORDER_NUMBER_PREFIX = "ORD"
MAX_IDEMPOTENCY_KEY_LENGTH = 128


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


def _require_transition(order: Order, new_status: str) -> None:
    if not can_transition(order.status, new_status):
        raise InvalidTransition(
            f"Cannot move order {order.order_number} from {order.status} to {new_status}",
            details={"from": order.status, "to": new_status},
        )


def _enter_status(order: Order, new_status: str) -> None:
    _require_transition(order, new_status)
    order.status = new_status
    stamp = _STATUS_TIMESTAMPS.get(new_status)
    if stamp:
        setattr(order, stamp, utcnow())


def _load_order(tenant_id: int, order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order)
    if lock:
        query = lock_for_update(query)
    return get_tenant_entity(Order, order_id, tenant_id, query=query)


def next_order_number(tenant_id: int) -> str:
    """
    Allocate the tenant's next order number inside the current transaction.

    The counter row is bumped with an atomic UPDATE; the first order of a
    tenant inserts the row under a savepoint so a concurrent first insert
    falls back to the UPDATE path.
    """
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.tenant_id == tenant_id)
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(OrderSequence(tenant_id=tenant_id, next_number=2))
            return f"{ORDER_NUMBER_PREFIX}-{1:05d}"
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(OrderSequence.next_number)
        .filter(OrderSequence.tenant_id == tenant_id)
        .scalar()
    )
    return f"{ORDER_NUMBER_PREFIX}-{current - 1:05d}"


def _normalize_idempotency_key(key) -> str | None:
    if key is None:
        return None
    if not isinstance(key, str):
        raise ValidationError("idempotency_key must be a string")
    key = key.strip()
    if not key:
        return None
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(f"idempotency_key exceeds max length {MAX_IDEMPOTENCY_KEY_LENGTH}")
    return key


def _existing_for_key(tenant_id: int, key: str | None) -> Order | None:
    if key is None:
        return None
    return db.session.query(Order).filter_by(tenant_id=tenant_id, idempotency_key=key).first()


def create_order(identity: Identity, tenant_id: int, payload: dict, *, idempotency_key: str | None = None):
    """
    Create an order and reserve its stock.

    payload holds customer and recipient fields plus
    items=[{"product_id", "quantity"}]. Every product must belong to the
    tenant and be active.

    Raises:
        ValidationError: bad payload
        NotFound: a product is missing or belongs to another tenant
        NegativeStockError: any line is short (nothing is persisted)
        RateLimitExceeded: too many creations by this caller
    """
    ctx = require_role(identity, tenant_id, roles_for("CREATE_ORDER"))

    if idempotency_key is None and isinstance(payload, dict):
        idempotency_key = payload.get("idempotency_key")
    key = _normalize_idempotency_key(idempotency_key)
    fields, items = validate_order(payload)

    existing = _existing_for_key(tenant_id, key)
    if existing is not None:
        current_app.logger.info("Order create replayed tenant_id=%s key=%s order_id=%s", tenant_id, key, existing.id)
        return project_order(existing, ctx.role)

    enforce_order_create_limit(ctx)

    def _op() -> Order:
        replay = _existing_for_key(tenant_id, key)
        if replay is not None:
            return replay

        actor = actor_for(ctx)

        product_ids = {item["product_id"] for item in items}
        products = {
            p.id: p
            for p in scoped_query(Product, tenant_id).filter(Product.id.in_(product_ids)).all()
        }

        lines: list[OrderItem] = []
        total_cost = 0
        total_price = 0
        for line_number, item in enumerate(items, start=1):
            product = products.get(item["product_id"])
            if product is None:
                raise NotFound("Product not found", details={"product_id": item["product_id"]})
            if not product.is_active:
                raise ValidationError(f"Product {product.sku} is not active")

            quantity = item["quantity"]
            total_cost += product.cost_cents * quantity
            total_price += product.price_cents * quantity
            lines.append(
                OrderItem(
                    line_number=line_number,
                    product_id=product.id,
                    sku=product.sku,
                    product_name=product.name,
                    quantity=quantity,
                    unit_price_cents=product.price_cents,
                    unit_cost_cents=product.cost_cents,
                )
            )

        order = Order(
            tenant_id=tenant_id,
            order_number=next_order_number(tenant_id),
            status=Order.PENDING,
            idempotency_key=key,
            total_cost_cents=total_cost,
            total_price_cents=total_price,
            total_profit_cents=total_price - total_cost,
            created_by_user_id=actor.user_id,
            created_at=utcnow(),
            items=lines,
            **fields,
        )
        db.session.add(order)
        db.session.flush()  # order.id for the movements

        reserve_for_order(
            tenant_id=tenant_id,
            items=lines,
            actor=actor,
            order_id=order.id,
            note=f"Order {order.order_number}",
        )

        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except IntegrityError:
        # A concurrent request with the same key won the insert
        existing = _existing_for_key(tenant_id, key)
        if existing is None:
            raise
        return project_order(existing, ctx.role)

    current_app.logger.info(
        "Order created tenant_id=%s order_id=%s number=%s lines=%s",
        tenant_id,
        order.id,
        order.order_number,
        len(items),
    )
    return project_order(order, ctx.role)


def mark_packed(identity: Identity, tenant_id: int, order_id: int, weight_grams):
    """paid -> processing, recording the parcel weight and the packer."""
    ctx = require_role(identity, tenant_id, roles_for("PACK_ORDER"))

    if not isinstance(weight_grams, int) or isinstance(weight_grams, bool) or weight_grams <= 0:
        raise ValidationError("weight_grams must be a positive integer")

    def _op() -> Order:
        order = _load_order(tenant_id, order_id, lock=True)
        if order.status != Order.PAID:
            raise InvalidTransition(
                f"Only paid orders can be packed (order is {order.status})",
                details={"from": order.status, "to": Order.PROCESSING},
            )
        actor = actor_for(ctx)
        _enter_status(order, Order.PROCESSING)
        order.weight_grams = weight_grams
        order.packed_by_user_id = actor.user_id
        db.session.commit()
        return order

    order = run_with_retry(_op)
    return project_order(order, ctx.role)


def update_shipping(identity: Identity, tenant_id: int, order_id: int, payload: dict):
    """
    Patch shipping metadata.

    A tracking number set for the first time while the order is processing
    moves it to shipped and stamps shipped_at. Cancelled and delivered
    orders are closed to shipping changes.
    """
    ctx = require_role(identity, tenant_id, roles_for("UPDATE_SHIPPING"))
    patch = validate_shipping(payload)

    def _op() -> Order:
        order = _load_order(tenant_id, order_id, lock=True)
        if order.status in (Order.CANCELLED, Order.DELIVERED):
            raise InvalidTransition(f"Cannot change shipping on a {order.status} order")

        newly_tracked = bool(patch.get("tracking_number")) and not order.tracking_number
        for key, value in patch.items():
            setattr(order, key, value)

        if newly_tracked and order.status == Order.PROCESSING:
            _enter_status(order, Order.SHIPPED)

        db.session.commit()
        return order

    order = run_with_retry(_op)
    return project_order(order, ctx.role)


def _cancel_locked(order: Order, reason: str | None, ctx) -> Order:
    if order.status in (Order.SHIPPED, Order.DELIVERED):
        raise InvalidTransition(
            f"Cannot cancel order {order.order_number}: already {order.status}",
            details={"from": order.status, "to": Order.CANCELLED},
        )
    _require_transition(order, Order.CANCELLED)

    actor = actor_for(ctx)
    restore_for_order(
        tenant_id=order.tenant_id,
        items=order.items,
        actor=actor,
        reason=f"Order {order.order_number} cancelled" + (f": {reason}" if reason else ""),
        order_id=order.id,
    )
    _enter_status(order, Order.CANCELLED)

    if reason:
        line = f"Cancelled: {reason}"
        order.notes = f"{order.notes}\n{line}" if order.notes else line
    return order


def cancel_order(identity: Identity, tenant_id: int, order_id: int, reason: str | None = None):
    """Cancel a pending/paid/processing order and put its stock back."""
    ctx = require_role(identity, tenant_id, roles_for("CANCEL_ORDER"))
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string")
    reason = (reason or "").strip() or None

    def _op() -> Order:
        order = _cancel_locked(_load_order(tenant_id, order_id, lock=True), reason, ctx)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order cancelled tenant_id=%s order_id=%s", tenant_id, order_id)
    return project_order(order, ctx.role)


def update_status(identity: Identity, tenant_id: int, order_id: int, new_status: str, *, reason: str | None = None):
    """
    Generic transition along the lifecycle, stamping paid/shipped/delivered
    timestamps. Moving to cancelled goes through the cancellation path so
    reserved stock is restored.
    """
    ctx = require_role(identity, tenant_id, roles_for("UPDATE_ORDER_STATUS"))

    if new_status not in Order.STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(Order.STATUSES)}")
    if new_status == Order.CANCELLED:
        return cancel_order(identity, tenant_id, order_id, reason)

    def _op() -> Order:
        order = _load_order(tenant_id, order_id, lock=True)
        _enter_status(order, new_status)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    return project_order(order, ctx.role)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _window(q, start: datetime | None, end: datetime | None):
    if start and end and start > end:
        raise ValidationError("start must not be after end")
    if start is not None:
        q = q.filter(Order.created_at >= start)
    if end is not None:
        q = q.filter(Order.created_at <= end)
    return q


def list_orders(
    identity: Identity,
    tenant_id: int,
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list:
    """
    Newest first. Packers only ever see the packing queue (paid and
    processing), whatever status filter they pass.
    """
    ctx = require_role(identity, tenant_id, roles_for("VIEW_ORDERS"))

    if status is not None and status not in Order.STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(Order.STATUSES)}")

    q = _window(scoped_query(Order, tenant_id), start, end)
    if status is not None:
        q = q.filter(Order.status == status)
    if ctx.role == PACKER:
        q = q.filter(Order.status.in_(PACKER_VISIBLE_STATUSES))

    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return project_orders(orders, ctx.role)


def get_order(identity: Identity, tenant_id: int, order_id: int):
    ctx = require_role(identity, tenant_id, roles_for("VIEW_ORDERS"))
    order = _load_order(tenant_id, order_id)
    if ctx.role == PACKER and order.status not in PACKER_VISIBLE_STATUSES:
        raise NotFound("Order not found")
    return project_order(order, ctx.role)


def next_order_to_pack(identity: Identity, tenant_id: int):
    """Oldest paid order, or None when the queue is empty."""
    ctx = require_role(identity, tenant_id, roles_for("PACK_ORDER"))
    order = (
        scoped_query(Order, tenant_id)
        .filter(Order.status == Order.PAID)
        .order_by(Order.created_at.asc(), Order.id.asc())
        .first()
    )
    return project_order(order, ctx.role) if order else None


def orders_by_product(identity: Identity, tenant_id: int, product_id: int) -> list:
    """Orders with at least one line for product_id (also after the product was deleted)."""
    ctx = require_role(identity, tenant_id, roles_for("ORDER_REPORTS"))
    orders = (
        scoped_query(Order, tenant_id)
        .filter(Order.items.any(OrderItem.product_id == product_id))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return project_orders(orders, ctx.role)


def _require_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def orders_by_packer(
    identity: Identity,
    tenant_id: int,
    user_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list:
    ctx = require_role(identity, tenant_id, roles_for("ORDER_REPORTS"))
    _require_user(user_id)
    q = _window(scoped_query(Order, tenant_id), start, end).filter(Order.packed_by_user_id == user_id)
    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return project_orders(orders, ctx.role)


def orders_by_creator(
    identity: Identity,
    tenant_id: int,
    user_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list:
    ctx = require_role(identity, tenant_id, roles_for("ORDER_REPORTS"))
    _require_user(user_id)
    q = _window(scoped_query(Order, tenant_id), start, end).filter(Order.created_by_user_id == user_id)
    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return project_orders(orders, ctx.role)
