from __future__ import annotations
from datetime import datetime
from packdesk.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Float, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models import Order, Product


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MAX_ORDER_LINES = 200


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


PRODUCT_POLICY = ModelValidationPolicy(
    # stock_quantity is deliberately absent: only the stock ledger writes it
    writable_fields={
        "sku", "name", "description", "cost_cents", "price_cents",
        "warehouse_location", "packing_instructions",
        "weight_grams", "length_cm", "width_cm", "height_cm", "is_active",
    },
    required_on_create={"sku", "name", "price_cents", "warehouse_location"},
)

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name", "customer_phone", "customer_email",
        "recipient_name", "recipient_phone", "recipient_address", "recipient_city",
        "recipient_province", "recipient_postal_code", "recipient_country",
        "notes", "special_instructions", "raw_text",
    },
    required_on_create={
        "customer_name", "recipient_name", "recipient_phone", "recipient_address",
        "recipient_city", "recipient_province", "recipient_postal_code", "recipient_country",
    },
)

SHIPPING_POLICY = ModelValidationPolicy(
    writable_fields={"tracking_number", "label_url", "courier_service", "shipping_cost_cents", "weight_grams"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Dimensions
    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_cents(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        value = patch[key]
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_cents(patch, "price_cents")
    _check_cents(patch, "cost_cents")

    for key in ("weight_grams", "length_cm", "width_cm", "height_cm"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")


def validate_product(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch


def validate_order_items(raw_items) -> list[dict]:
    """
    Items are [{"product_id": int, "quantity": int > 0}, ...].

    Duplicate product ids are allowed; each becomes its own line.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    if len(raw_items) > MAX_ORDER_LINES:
        raise ValidationError(f"an order cannot have more than {MAX_ORDER_LINES} lines")

    items = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"item {index} must be an object")
        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ValidationError(f"item {index}: product_id must be an integer")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"item {index}: quantity must be a positive integer")
        items.append({"product_id": product_id, "quantity": quantity})
    return items


def validate_order(payload: dict) -> tuple[dict, list[dict]]:
    """Split a create-order body into (order fields, items)."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    body = dict(payload)
    items = validate_order_items(body.pop("items", None))
    body.pop("idempotency_key", None)
    fields = validate_payload(model=Order, payload=body, policy=ORDER_POLICY, partial=False)
    return fields, items


def validate_shipping(payload: dict) -> dict:
    patch = validate_payload(model=Order, payload=payload, policy=SHIPPING_POLICY, partial=True)
    if not patch:
        raise ValidationError("No shipping fields provided")
    _check_cents(patch, "shipping_cost_cents")
    if patch.get("weight_grams") is not None and patch["weight_grams"] <= 0:
        raise ValidationError("weight_grams must be > 0")
    return patch
