from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Per-line cap; keeps a single order from draining the catalog by typo
MAX_ORDER_QUANTITY = 10_000

# Signed 64-bit range of an INTEGER column
MAX_DB_INT = 2**63 - 1
MIN_DB_INT = -(2**63)

PAYMENT_METHODS = ("online", "cod")
PAYMENT_STATUSES = ("pending", "paid", "failed")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.field:
            body["field"] = self.field
        return body


class NotFoundError(LookupError):
    """404-level: a referenced book, category or order id does not resolve."""


class BusinessRuleError(Exception):
    """409-level domain rule violation (e.g., insufficient stock)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class ConflictError(ValueError):
    """409-level uniqueness conflict (e.g., duplicate username)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(value: Any, field: str) -> int:
    value = _parse_int(value, field)
    if not MIN_DB_INT <= value <= MAX_DB_INT:
        raise ValidationError(f"{field} is out of range", field)
    return value


def _parse_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field)
    raise ValidationError(f"{field} must be an integer", field)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string", col.key)
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

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        patch[k] = val

    return patch


def enforce_rules_book(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0", "price_cents")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(
                f"price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})",
                "price_cents",
            )

    if "stock" in patch and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0", "stock")

    if "low_stock_threshold" in patch and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0", "low_stock_threshold")


# =============================================================================
# ORDER COMMANDS
# =============================================================================


@dataclass(frozen=True)
class OrderLine:
    book_id: int
    quantity: int


@dataclass(frozen=True)
class CreateOrderCommand:
    """Validated checkout request. Built only by parse_create_order()."""
    items: tuple[OrderLine, ...]
    customer_name: str
    address: str
    payment_method: str | None = None
    user_id: int | None = None


@dataclass(frozen=True)
class StatusUpdateCommand:
    status: str
    payment_status: str | None = None


ORDER_FIELDS = frozenset({"items", "customer_name", "address", "payment_method"})
ORDER_ITEM_FIELDS = frozenset({"book_id", "quantity"})
STATUS_FIELDS = frozenset({"status", "payment_status"})


def _require_text(payload: dict, field: str, max_length: int | None = None) -> str:
    raw = payload.get(field)
    if raw is None:
        raise ValidationError(f"{field} is required", field)
    if not isinstance(raw, str):
        raise ValidationError(f"{field} must be a string", field)
    value = raw.strip()
    if not value:
        raise ValidationError(f"{field} cannot be blank", field)
    if max_length and len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", field)
    return value


def _reject_unknown(payload: dict, allowed: frozenset[str], prefix: str = "") -> None:
    for k in payload.keys():
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {prefix}{k}", f"{prefix}{k}")


def parse_create_order(payload: Any, *, user_id: int | None = None) -> CreateOrderCommand:
    """
    Turn a checkout body into a CreateOrderCommand.

    Rejects an empty item list, quantities below 1 and non-integer ids
    before anything reaches the order service.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    _reject_unknown(payload, ORDER_FIELDS)

    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list", "items")
    if not raw_items:
        raise ValidationError("Order must contain at least one item", "items")

    lines = []
    for i, raw in enumerate(raw_items):
        prefix = f"items[{i}]."
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object", f"items[{i}]")
        _reject_unknown(raw, ORDER_ITEM_FIELDS, prefix)
        if "book_id" not in raw:
            raise ValidationError(f"{prefix}book_id is required", f"{prefix}book_id")
        if "quantity" not in raw:
            raise ValidationError(f"{prefix}quantity is required", f"{prefix}quantity")

        book_id = _coerce_int(raw["book_id"], f"{prefix}book_id")
        quantity = _coerce_int(raw["quantity"], f"{prefix}quantity")
        if quantity < 1:
            raise ValidationError(f"{prefix}quantity must be >= 1", f"{prefix}quantity")
        if quantity > MAX_ORDER_QUANTITY:
            raise ValidationError(f"{prefix}quantity cannot exceed {MAX_ORDER_QUANTITY}", f"{prefix}quantity")
        lines.append(OrderLine(book_id=book_id, quantity=quantity))

    payment_method = payload.get("payment_method")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            "payment_method",
        )

    return CreateOrderCommand(
        items=tuple(lines),
        customer_name=_require_text(payload, "customer_name", 255),
        address=_require_text(payload, "address"),
        payment_method=payment_method,
        user_id=user_id,
    )


def parse_status_update(payload: Any, *, allowed_statuses: tuple[str, ...]) -> StatusUpdateCommand:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    _reject_unknown(payload, STATUS_FIELDS)

    status = payload.get("status")
    if status is None:
        raise ValidationError("status is required", "status")
    if status not in allowed_statuses:
        raise ValidationError(f"status must be one of: {', '.join(allowed_statuses)}", "status")

    payment_status = payload.get("payment_status")
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
            "payment_status",
        )

    return StatusUpdateCommand(status=status, payment_status=payment_status)
