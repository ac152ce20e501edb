# Overview: Owner-facing inventory operations layered on the stock ledger.

# backend/packdesk/services/inventory_service.py

from __future__ import annotations

from datetime import datetime

from ..errors import ValidationError
from ..models import Product, StockMovement
from ..permissions import roles_for
from . import ledger_service
from .identity_service import Identity
from .permission_service import require_role
from .tenant_service import get_tenant_entity
from .user_service import actor_for
"""
Inventory Time Semantics (authoritative)

- All internal datetimes are UTC-naive (tzinfo=None).
- API accepts ISO-8601 with 'Z' or offsets; inputs are normalized to UTC-naive.
- Movement date windows are inclusive on both ends.

Only the owner adjusts or receives stock by hand and only the owner reads the
movement history; order-driven stock changes come from the order service.
"""


def _check_note(note):
    if note is None:
        return None
    if not isinstance(note, str):
        raise ValidationError("note must be a string")
    if len(note) > 500:
        raise ValidationError("note exceeds max length 500")
    return note


def _positive_int(value, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return value


def manual_adjust(identity: Identity, tenant_id: int, product_id: int, delta, note: str | None = None) -> StockMovement:
    """Signed manual correction (stock_adjustment). delta must be a non-zero integer."""
    ctx = require_role(identity, tenant_id, roles_for("ADJUST_STOCK"))

    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")
    note = _check_note(note)

    get_tenant_entity(Product, product_id, tenant_id)
    return ledger_service.adjust_stock(
        tenant_id=tenant_id,
        product_id=product_id,
        delta=delta,
        actor=actor_for(ctx),
        note=note,
        movement_type=StockMovement.STOCK_ADJUSTMENT,
    )


def receive_stock(identity: Identity, tenant_id: int, product_id: int, quantity, note: str | None = None) -> StockMovement:
    """Restock (stock_in). quantity must be positive."""
    ctx = require_role(identity, tenant_id, roles_for("ADJUST_STOCK"))
    quantity = _positive_int(quantity, "quantity")
    note = _check_note(note)

    get_tenant_entity(Product, product_id, tenant_id)
    return ledger_service.adjust_stock(
        tenant_id=tenant_id,
        product_id=product_id,
        delta=quantity,
        actor=actor_for(ctx),
        note=note,
        movement_type=StockMovement.STOCK_IN,
    )


def stock_level(identity: Identity, tenant_id: int, product_id: int) -> int:
    require_role(identity, tenant_id, roles_for("VIEW_PRODUCTS"))
    return ledger_service.get_stock_level(tenant_id, product_id)


def list_movements(
    identity: Identity,
    tenant_id: int,
    *,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    movement_type: str | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    """Movement history for one product or the whole tenant, newest first."""
    require_role(identity, tenant_id, roles_for("VIEW_MOVEMENTS"))

    if movement_type is not None and movement_type not in StockMovement.TYPES:
        raise ValidationError(f"type must be one of: {', '.join(StockMovement.TYPES)}")
    if start and end and start > end:
        raise ValidationError("start must not be after end")
    if product_id is not None:
        get_tenant_entity(Product, product_id, tenant_id)

    return ledger_service.list_movements(
        tenant_id,
        product_id=product_id,
        start=start,
        end=end,
        movement_type=movement_type,
        limit=limit,
    )


def movement_stats(
    identity: Identity,
    tenant_id: int,
    *,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    require_role(identity, tenant_id, roles_for("VIEW_MOVEMENTS"))
    if start and end and start > end:
        raise ValidationError("start must not be after end")
    return ledger_service.movement_stats(tenant_id, product_id=product_id, start=start, end=end)
