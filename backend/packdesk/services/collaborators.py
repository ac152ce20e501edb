# Overview: Interface boundary for the extraction and shipping-label services.

"""
External Collaborators

Free-text order extraction and label purchase are third-party services. The
core only defines what it hands them and what it accepts back:

- ExtractionProvider.extract(text) -> DraftOrder
  The draft is ordinary, untrusted input: create_order_from_draft maps its
  SKUs onto the tenant's catalog and sends it through create_order like any
  other request (same role check, validation and stock reservation).

- LabelProvider.purchase_label(order_view) -> ShippingLabel
  The provider only ever sees the caller's projected order view. Its result
  is applied through update_shipping; a provider failure is logged and
  leaves the order exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..models import Product
from ..permissions import roles_for
from . import order_service
from .identity_service import Identity
from .permission_service import require_role
from .tenant_service import scoped_query


@dataclass(frozen=True)
class DraftItem:
    sku: str | None
    quantity: int
    confidence: float = 1.0
    notes: str | None = None


@dataclass(frozen=True)
class DraftOrder:
    customer_name: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    recipient_city: str
    recipient_province: str
    recipient_postal_code: str
    recipient_country: str
    items: list[DraftItem] = field(default_factory=list)
    customer_phone: str | None = None
    customer_email: str | None = None
    notes: str | None = None
    confidence: float = 1.0


@dataclass(frozen=True)
class ShippingLabel:
    tracking_number: str
    label_url: str | None = None
    shipping_cost_cents: int | None = None
    courier_service: str | None = None

    def to_payload(self) -> dict:
        payload = {"tracking_number": self.tracking_number}
        if self.label_url is not None:
            payload["label_url"] = self.label_url
        if self.shipping_cost_cents is not None:
            payload["shipping_cost_cents"] = self.shipping_cost_cents
        if self.courier_service is not None:
            payload["courier_service"] = self.courier_service
        return payload


class ExtractionProvider:
    def extract(self, text: str) -> DraftOrder:
        raise NotImplementedError


class LabelProvider:
    def purchase_label(self, order_view) -> ShippingLabel:
        raise NotImplementedError


def _resolve_skus(tenant_id: int, draft: DraftOrder) -> list[dict]:
    missing = [i for i, item in enumerate(draft.items, start=1) if not item.sku]
    if missing:
        raise ValidationError(
            "Draft has items without a catalog SKU",
            details={"lines": missing},
        )

    wanted = {item.sku.strip().lower() for item in draft.items}
    products = (
        scoped_query(Product, tenant_id)
        .filter(func.lower(Product.sku).in_(wanted))
        .all()
    )
    by_sku = {p.sku.lower(): p.id for p in products}

    unknown = sorted(sku for sku in wanted if sku not in by_sku)
    if unknown:
        raise ValidationError("Draft references unknown SKUs", details={"skus": unknown})

    return [
        {"product_id": by_sku[item.sku.strip().lower()], "quantity": item.quantity}
        for item in draft.items
    ]


def create_order_from_draft(
    identity: Identity,
    tenant_id: int,
    draft: DraftOrder,
    *,
    raw_text: str | None = None,
    idempotency_key: str | None = None,
):
    """Turn an extracted draft into a real order through create_order."""
    require_role(identity, tenant_id, roles_for("CREATE_ORDER"))

    payload = {
        "customer_name": draft.customer_name,
        "customer_phone": draft.customer_phone,
        "customer_email": draft.customer_email,
        "recipient_name": draft.recipient_name,
        "recipient_phone": draft.recipient_phone,
        "recipient_address": draft.recipient_address,
        "recipient_city": draft.recipient_city,
        "recipient_province": draft.recipient_province,
        "recipient_postal_code": draft.recipient_postal_code,
        "recipient_country": draft.recipient_country,
        "notes": draft.notes,
        "raw_text": raw_text,
        "items": _resolve_skus(tenant_id, draft),
    }
    return order_service.create_order(identity, tenant_id, payload, idempotency_key=idempotency_key)


def extract_and_create(
    identity: Identity,
    tenant_id: int,
    text: str,
    provider: ExtractionProvider,
    *,
    idempotency_key: str | None = None,
):
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text is required")
    require_role(identity, tenant_id, roles_for("CREATE_ORDER"))
    draft = provider.extract(text)
    return create_order_from_draft(identity, tenant_id, draft, raw_text=text, idempotency_key=idempotency_key)


def purchase_and_apply_label(identity: Identity, tenant_id: int, order_id: int, provider: LabelProvider):
    """
    Buy a label for the order and record it via update_shipping.

    Returns the updated order view, or None if the provider failed. The
    order is never rolled back or otherwise changed because of a provider
    failure.
    """
    view = order_service.get_order(identity, tenant_id, order_id)

    try:
        label = provider.purchase_label(view)
    except Exception:
        current_app.logger.exception("Label purchase failed tenant_id=%s order_id=%s", tenant_id, order_id)
        return None

    if label is None or not label.tracking_number:
        current_app.logger.warning("Label provider returned no tracking number order_id=%s", order_id)
        return None

    return order_service.update_shipping(identity, tenant_id, order_id, label.to_payload())
