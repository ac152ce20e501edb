# Overview: Role-scoped read views for orders and products.

"""
Response Projections

Each entity has exactly three view types, one per role. A view is a frozen
dataclass whose fields are the complete set of values that role may see, so
a field missing from the class cannot reach the response. Every read path,
single item or list, goes through project_order / project_product.

- Owner:  everything, including cost and profit
- Admin:  operational fields and sell prices, no cost/profit
- Packer: warehouse fields only, no money at all
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import ClassVar

from .models import Order, OrderItem, Product
from .permissions import ADMIN, OWNER, PACKER
from .time_utils import to_utc_z


class _View:
    kind: ClassVar[str] = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["view"] = self.kind
        return data


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PackerProductView(_View):
    kind: ClassVar[str] = PACKER

    id: int
    sku: str
    name: str
    warehouse_location: str
    packing_instructions: str | None
    stock_quantity: int
    weight_grams: int | None
    length_cm: float | None
    width_cm: float | None
    height_cm: float | None


@dataclass(frozen=True)
class AdminProductView(_View):
    kind: ClassVar[str] = ADMIN

    id: int
    sku: str
    name: str
    description: str | None
    price_cents: int
    stock_quantity: int
    warehouse_location: str
    packing_instructions: str | None
    weight_grams: int | None
    length_cm: float | None
    width_cm: float | None
    height_cm: float | None
    is_active: bool
    created_at: str | None
    updated_at: str | None


@dataclass(frozen=True)
class OwnerProductView(_View):
    kind: ClassVar[str] = OWNER

    id: int
    sku: str
    name: str
    description: str | None
    cost_cents: int
    price_cents: int
    profit_margin_cents: int
    stock_quantity: int
    warehouse_location: str
    packing_instructions: str | None
    weight_grams: int | None
    length_cm: float | None
    width_cm: float | None
    height_cm: float | None
    is_active: bool
    created_at: str | None
    updated_at: str | None


def _packer_product(p: Product) -> PackerProductView:
    return PackerProductView(
        id=p.id,
        sku=p.sku,
        name=p.name,
        warehouse_location=p.warehouse_location,
        packing_instructions=p.packing_instructions,
        stock_quantity=p.stock_quantity,
        **p.dimensions(),
    )


def _admin_product(p: Product) -> AdminProductView:
    return AdminProductView(
        id=p.id,
        sku=p.sku,
        name=p.name,
        description=p.description,
        price_cents=p.price_cents,
        stock_quantity=p.stock_quantity,
        warehouse_location=p.warehouse_location,
        packing_instructions=p.packing_instructions,
        **p.dimensions(),
        is_active=p.is_active,
        created_at=to_utc_z(p.created_at),
        updated_at=to_utc_z(p.updated_at),
    )


def _owner_product(p: Product) -> OwnerProductView:
    return OwnerProductView(
        id=p.id,
        sku=p.sku,
        name=p.name,
        description=p.description,
        cost_cents=p.cost_cents,
        price_cents=p.price_cents,
        profit_margin_cents=p.profit_margin_cents,
        stock_quantity=p.stock_quantity,
        warehouse_location=p.warehouse_location,
        packing_instructions=p.packing_instructions,
        **p.dimensions(),
        is_active=p.is_active,
        created_at=to_utc_z(p.created_at),
        updated_at=to_utc_z(p.updated_at),
    )


_PRODUCT_BUILDERS = {
    OWNER: _owner_product,
    ADMIN: _admin_product,
    PACKER: _packer_product,
}


def project_product(product: Product, role: str):
    """Reduce a product to the view for `role`. Unknown roles are refused."""
    try:
        builder = _PRODUCT_BUILDERS[role]
    except KeyError:
        raise ValueError(f"No product view for role {role!r}")
    return builder(product)


def project_products(products, role: str) -> list:
    return [project_product(p, role) for p in products]


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PackerOrderItemView(_View):
    kind: ClassVar[str] = PACKER

    line_number: int
    product_id: int
    sku: str
    product_name: str
    quantity: int


@dataclass(frozen=True)
class AdminOrderItemView(_View):
    kind: ClassVar[str] = ADMIN

    line_number: int
    product_id: int
    sku: str
    product_name: str
    quantity: int
    unit_price_cents: int


@dataclass(frozen=True)
class OwnerOrderItemView(_View):
    kind: ClassVar[str] = OWNER

    line_number: int
    product_id: int
    sku: str
    product_name: str
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int


@dataclass(frozen=True)
class PackerOrderView(_View):
    kind: ClassVar[str] = PACKER

    id: int
    order_number: str
    status: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    recipient_city: str
    recipient_province: str
    recipient_postal_code: str
    recipient_country: str
    items: tuple[PackerOrderItemView, ...]
    special_instructions: str | None
    weight_grams: int | None
    tracking_number: str | None
    label_url: str | None
    courier_service: str | None
    created_at: str | None
    paid_at: str | None
    shipped_at: str | None


@dataclass(frozen=True)
class AdminOrderView(_View):
    kind: ClassVar[str] = ADMIN

    id: int
    order_number: str
    status: str
    customer_name: str
    customer_phone: str | None
    customer_email: str | None
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    recipient_city: str
    recipient_province: str
    recipient_postal_code: str
    recipient_country: str
    items: tuple[AdminOrderItemView, ...]
    total_price_cents: int
    notes: str | None
    special_instructions: str | None
    weight_grams: int | None
    tracking_number: str | None
    label_url: str | None
    courier_service: str | None
    created_by_user_id: int
    packed_by_user_id: int | None
    created_at: str | None
    paid_at: str | None
    shipped_at: str | None
    delivered_at: str | None
    cancelled_at: str | None


@dataclass(frozen=True)
class OwnerOrderView(_View):
    kind: ClassVar[str] = OWNER

    id: int
    order_number: str
    status: str
    customer_name: str
    customer_phone: str | None
    customer_email: str | None
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    recipient_city: str
    recipient_province: str
    recipient_postal_code: str
    recipient_country: str
    items: tuple[OwnerOrderItemView, ...]
    total_cost_cents: int
    total_price_cents: int
    total_profit_cents: int
    shipping_cost_cents: int | None
    raw_text: str | None
    notes: str | None
    special_instructions: str | None
    weight_grams: int | None
    tracking_number: str | None
    label_url: str | None
    courier_service: str | None
    created_by_user_id: int
    packed_by_user_id: int | None
    created_at: str | None
    paid_at: str | None
    shipped_at: str | None
    delivered_at: str | None
    cancelled_at: str | None


def _recipient(o: Order) -> dict:
    return {
        "recipient_name": o.recipient_name,
        "recipient_phone": o.recipient_phone,
        "recipient_address": o.recipient_address,
        "recipient_city": o.recipient_city,
        "recipient_province": o.recipient_province,
        "recipient_postal_code": o.recipient_postal_code,
        "recipient_country": o.recipient_country,
    }


def _shipping(o: Order) -> dict:
    return {
        "weight_grams": o.weight_grams,
        "tracking_number": o.tracking_number,
        "label_url": o.label_url,
        "courier_service": o.courier_service,
    }


def _packer_item(i: OrderItem) -> PackerOrderItemView:
    return PackerOrderItemView(
        line_number=i.line_number,
        product_id=i.product_id,
        sku=i.sku,
        product_name=i.product_name,
        quantity=i.quantity,
    )


def _admin_item(i: OrderItem) -> AdminOrderItemView:
    return AdminOrderItemView(
        line_number=i.line_number,
        product_id=i.product_id,
        sku=i.sku,
        product_name=i.product_name,
        quantity=i.quantity,
        unit_price_cents=i.unit_price_cents,
    )


def _owner_item(i: OrderItem) -> OwnerOrderItemView:
    return OwnerOrderItemView(
        line_number=i.line_number,
        product_id=i.product_id,
        sku=i.sku,
        product_name=i.product_name,
        quantity=i.quantity,
        unit_price_cents=i.unit_price_cents,
        unit_cost_cents=i.unit_cost_cents,
    )


def _packer_order(o: Order) -> PackerOrderView:
    return PackerOrderView(
        id=o.id,
        order_number=o.order_number,
        status=o.status,
        **_recipient(o),
        items=tuple(_packer_item(i) for i in o.items),
        special_instructions=o.special_instructions,
        **_shipping(o),
        created_at=to_utc_z(o.created_at),
        paid_at=to_utc_z(o.paid_at),
        shipped_at=to_utc_z(o.shipped_at),
    )


def _admin_order(o: Order) -> AdminOrderView:
    return AdminOrderView(
        id=o.id,
        order_number=o.order_number,
        status=o.status,
        customer_name=o.customer_name,
        customer_phone=o.customer_phone,
        customer_email=o.customer_email,
        **_recipient(o),
        items=tuple(_admin_item(i) for i in o.items),
        total_price_cents=o.total_price_cents,
        notes=o.notes,
        special_instructions=o.special_instructions,
        **_shipping(o),
        created_by_user_id=o.created_by_user_id,
        packed_by_user_id=o.packed_by_user_id,
        created_at=to_utc_z(o.created_at),
        paid_at=to_utc_z(o.paid_at),
        shipped_at=to_utc_z(o.shipped_at),
        delivered_at=to_utc_z(o.delivered_at),
        cancelled_at=to_utc_z(o.cancelled_at),
    )


def _owner_order(o: Order) -> OwnerOrderView:
    return OwnerOrderView(
        id=o.id,
        order_number=o.order_number,
        status=o.status,
        customer_name=o.customer_name,
        customer_phone=o.customer_phone,
        customer_email=o.customer_email,
        **_recipient(o),
        items=tuple(_owner_item(i) for i in o.items),
        total_cost_cents=o.total_cost_cents,
        total_price_cents=o.total_price_cents,
        total_profit_cents=o.total_profit_cents,
        shipping_cost_cents=o.shipping_cost_cents,
        raw_text=o.raw_text,
        notes=o.notes,
        special_instructions=o.special_instructions,
        **_shipping(o),
        created_by_user_id=o.created_by_user_id,
        packed_by_user_id=o.packed_by_user_id,
        created_at=to_utc_z(o.created_at),
        paid_at=to_utc_z(o.paid_at),
        shipped_at=to_utc_z(o.shipped_at),
        delivered_at=to_utc_z(o.delivered_at),
        cancelled_at=to_utc_z(o.cancelled_at),
    )


_ORDER_BUILDERS = {
    OWNER: _owner_order,
    ADMIN: _admin_order,
    PACKER: _packer_order,
}


def project_order(order: Order, role: str):
    """Reduce an order to the view for `role`. Unknown roles are refused."""
    try:
        builder = _ORDER_BUILDERS[role]
    except KeyError:
        raise ValueError(f"No order view for role {role!r}")
    return builder(order)


def project_orders(orders, role: str) -> list:
    return [project_order(o, role) for o in orders]
