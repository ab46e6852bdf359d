from __future__ import annotations
from datetime import datetime
from stockbook.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models.catalog import RESTOCK_FREQUENCIES
from .models.invoices import INVOICE_STATUSES


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """400-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "description", "sku", "category_id", "price_cents",
        "cost_price_cents", "stock_quantity", "low_stock_threshold", "supplier",
    }),
    required_on_create=frozenset({
        "name", "description", "sku", "category_id", "price_cents",
        "cost_price_cents", "stock_quantity",
    }),
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "description", "color", "department_responsible",
        "storage_location", "restock_frequency",
    }),
    required_on_create=frozenset({"name", "description"}),
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "email", "phone", "address", "notes", "pan_number", "vat_number",
    }),
    required_on_create=frozenset({"name"}),
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

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

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

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

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable and col.default is None:
                raise ValidationError(f"{k} cannot be null")
            if not col.nullable:
                # Fall back to the column default on create; ignore on update
                continue
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and col.default is None:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        # Optional text fields: treat blank as null
        if isinstance(val, str) and val == "" and col.nullable:
            val = None

        patch[k] = val

    return patch


def _check_money(patch: dict, field: str) -> None:
    if field in patch and patch[field] is not None:
        value = patch[field]
        if value < 0:
            raise ValidationError(f"{field} must be >= 0")
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")


def _check_quantity(patch: dict, field: str) -> None:
    if field in patch and patch[field] is not None:
        value = patch[field]
        if value < 0:
            raise ValidationError(f"{field} must be >= 0")
        if value > MAX_QUANTITY:
            raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_money(patch, "price_cents")
    _check_money(patch, "cost_price_cents")
    _check_quantity(patch, "stock_quantity")
    _check_quantity(patch, "low_stock_threshold")


def enforce_rules_category(patch: dict) -> None:
    frequency = patch.get("restock_frequency")
    if frequency is not None:
        frequency = frequency.lower()
        if frequency not in RESTOCK_FREQUENCIES:
            raise ValidationError(
                f"restock_frequency must be one of: {', '.join(RESTOCK_FREQUENCIES)}"
            )
        patch["restock_frequency"] = frequency
    if patch.get("color") == "":
        patch.pop("color")
    color = patch.get("color")
    if color is not None and (not color.startswith("#") or len(color) not in (4, 7)):
        raise ValidationError("color must be a hex value like #3B82F6")


def enforce_rules_customer(patch: dict) -> None:
    email = patch.get("email")
    if email is not None:
        email = email.lower()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("email must be a valid email address")
        patch["email"] = email


def validate_invoice_status(value: Any) -> str:
    if not isinstance(value, str) or value.upper() not in INVOICE_STATUSES:
        raise ValidationError("Invalid status")
    return value.upper()


def validate_invoice_payload(payload: dict) -> dict:
    """
    Normalize an invoice creation payload.

    Returns a dict with customer_id, items (list of dicts with product_id,
    quantity, unit_price_cents, discount_cents), tax_amount_cents,
    discount_cents, due_date and notes.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"customer_id", "items", "tax_amount_cents", "discount_cents", "due_date", "notes"}
    for k in payload.keys():
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}")

    if payload.get("customer_id") is None:
        raise ValidationError("customer_id is required")
    customer_id = coerce_int(payload["customer_id"], "customer_id")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        for field in ("product_id", "quantity", "unit_price_cents"):
            if raw.get(field) is None:
                raise ValidationError(f"items[{index}].{field} is required")
        item = {
            "product_id": coerce_int(raw["product_id"], f"items[{index}].product_id"),
            "quantity": coerce_int(raw["quantity"], f"items[{index}].quantity"),
            "unit_price_cents": coerce_int(raw["unit_price_cents"], f"items[{index}].unit_price_cents"),
            "discount_cents": coerce_int(raw.get("discount_cents") or 0, f"items[{index}].discount_cents"),
        }
        if item["quantity"] <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")
        if item["quantity"] > MAX_QUANTITY:
            raise ValidationError(f"items[{index}].quantity cannot exceed {MAX_QUANTITY}")
        if not 0 <= item["unit_price_cents"] <= MAX_PRICE_CENTS:
            raise ValidationError(f"items[{index}].unit_price_cents must be between 0 and {MAX_PRICE_CENTS}")
        if item["discount_cents"] < 0:
            raise ValidationError(f"items[{index}].discount_cents must be >= 0")
        if item["discount_cents"] > item["unit_price_cents"] * item["quantity"]:
            raise ValidationError(f"items[{index}].discount_cents cannot exceed the line amount")
        items.append(item)

    totals = {
        "tax_amount_cents": coerce_int(payload.get("tax_amount_cents") or 0, "tax_amount_cents"),
        "discount_cents": coerce_int(payload.get("discount_cents") or 0, "discount_cents"),
    }
    _check_money(totals, "tax_amount_cents")
    _check_money(totals, "discount_cents")
    tax = totals["tax_amount_cents"]
    discount = totals["discount_cents"]

    subtotal = sum(i["unit_price_cents"] * i["quantity"] - i["discount_cents"] for i in items)
    if discount > subtotal + tax:
        raise ValidationError("discount_cents cannot exceed the invoice subtotal plus tax")

    due_date = None
    raw_due = payload.get("due_date")
    if raw_due is not None and raw_due != "":
        if not isinstance(raw_due, str):
            raise ValidationError("due_date must be an ISO-8601 datetime")
        try:
            due_date = parse_iso_datetime(raw_due)
        except ValueError:
            raise ValidationError("due_date must be an ISO-8601 datetime")

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes).strip() or None

    return {
        "customer_id": customer_id,
        "items": items,
        "tax_amount_cents": tax,
        "discount_cents": discount,
        "due_date": due_date,
        "notes": notes,
    }
