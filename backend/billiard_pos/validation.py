from __future__ import annotations
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum money value that fits NUMERIC(10, 2)
MAX_PRICE = Decimal("99999999.99")

PRODUCT_CATEGORIES = ("drink", "food", "accessory", "other")
COMBO_CATEGORIES = PRODUCT_CATEGORIES + ("combo",)
PAYMENT_METHODS = ("cash", "gcash")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    - extra_fields: non-column keys the route handles itself (e.g. a combo's components)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_money(value: Any, field: str) -> Decimal:
    """Parse a JSON number or numeric string into a 2-place Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # str() first so floats like 0.1 do not carry binary noise
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return amount.quantize(Decimal("0.01"))


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Money columns
    if isinstance(coltype, Numeric):
        return parse_money(value, col.key)

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

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

    extra = policy.extra_fields or set()

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in extra:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            continue
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


def _enforce_price(patch: dict, field: str) -> None:
    if field in patch and patch[field] is not None:
        price = patch[field]
        if price <= 0:
            raise ValidationError(f"{field} must be > 0")
        if price > MAX_PRICE:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _enforce_price(patch, "price")
    if "cost" in patch and patch["cost"] is not None:
        if patch["cost"] < 0:
            raise ValidationError("cost must be >= 0")
        if patch["cost"] > MAX_PRICE:
            raise ValidationError(f"cost cannot exceed {MAX_PRICE}")
    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 0")
    if "category" in patch and patch["category"] not in PRODUCT_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(PRODUCT_CATEGORIES)}")


def enforce_rules_combo(patch: dict) -> None:
    _enforce_price(patch, "price")
    if "category" in patch and patch["category"] not in COMBO_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(COMBO_CATEGORIES)}")


def parse_components(raw: Any) -> list[tuple[int, int]]:
    """
    Normalize a combo recipe payload ([{"product_id": .., "quantity": ..}, ...])
    into (product_id, quantity) pairs. Duplicates are reported by the combo service.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("components must be a list")

    components = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"components[{i}] must be an object")
        if "product_id" not in item:
            raise ValidationError(f"components[{i}].product_id is required")
        product_id = parse_int(item["product_id"], f"components[{i}].product_id")
        quantity = parse_int(item.get("quantity", 1), f"components[{i}].quantity")
        if quantity <= 0:
            raise ValidationError(f"components[{i}].quantity must be > 0")
        components.append((product_id, quantity))
    return components


def parse_positive_int(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    parsed = parse_int(value, field)
    if parsed <= 0:
        raise ValidationError(f"{field} must be > 0")
    return parsed


def enforce_payment(payment_method: str | None, reference_number: str | None) -> tuple[str, str | None]:
    """Payment method defaults to cash; a reference number is only accepted for gcash."""
    method = (payment_method or "cash").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    reference = reference_number.strip() if isinstance(reference_number, str) else reference_number
    if reference in ("", None):
        return method, None
    if method != "gcash":
        raise ValidationError("reference_number is only accepted for gcash payments")
    if len(str(reference)) > 64:
        raise ValidationError("reference_number exceeds max length 64")
    return method, str(reference)


def parse_item_ref(payload: dict):
    """
    combo_id or product_id identifies what an order line sells. When both are
    sent, combo_id wins and product_id is ignored (older clients send 0).
    Returns a ProductRef or ComboRef.
    """
    from .models.orders import ComboRef, ProductRef

    product_id = payload.get("product_id")
    combo_id = payload.get("combo_id")
    if combo_id is not None:
        return ComboRef(parse_positive_int(combo_id, "combo_id"))
    if product_id is None:
        raise ValidationError("Provide product_id or combo_id")
    return ProductRef(parse_positive_int(product_id, "product_id"))


def parse_bool(value: Any, default: bool = False) -> bool:
    """Query-string flags: 1/true/yes/on and 0/false/no/off."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValidationError(f"Invalid boolean value: {value}")
