"""
Input validation and default substitution.

Responsibility:
    Turns request payloads (camelCase, possibly partial, numbers possibly
    arriving as JSON floats or strings) into validated kernel inputs, and
    holds the product invariants that ProductCatalog re-checks on every
    create and update.

Architecture position:
    Kernel > Domain -- pure functions, no I/O, no session.

Invariants enforced:
    - Quantities and thresholds are non-negative ints (bool rejected).
    - Prices are non-negative Decimals.
    - min_threshold <= max_threshold.
    - Quantity fields cannot be set through an update patch.

Defaults (applied only when a create payload omits the field or sends null):
    cost/selling price -> 0, min_threshold -> 5, max_threshold -> 100,
    category -> "General".  See ProductDefaults.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from stock_kernel.db.types import to_money
from stock_kernel.domain.dtos import ProductDefaults, ProductSpec, ReceiptLine
from stock_kernel.exceptions import ValidationError
from stock_kernel.models.stock_transaction import TransactionType

MAX_NAME_LENGTH = 200
MAX_CATEGORY_LENGTH = 100

# Wire (camelCase) name -> kernel field name
FIELD_ALIASES: dict[str, str] = {
    "name": "name",
    "category": "category",
    "initialQuantity": "initial_quantity",
    "remainingQuantity": "remaining_quantity",
    "soldQuantity": "sold_quantity",
    "costPrice": "cost_price",
    "sellingPrice": "selling_price",
    "minThreshold": "min_threshold",
    "maxThreshold": "max_threshold",
}

MUTABLE_FIELDS = frozenset(
    {"name", "category", "cost_price", "selling_price", "min_threshold", "max_threshold"}
)

QUANTITY_FIELDS = frozenset({"initial_quantity", "remaining_quantity", "sold_quantity"})


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def validate_quantity(value: Any, field: str, *, positive: bool = False) -> int:
    """Return ``value`` as a non-negative (or positive) int."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {value!r}", field=field)
    if positive and value <= 0:
        raise ValidationError(f"{field} must be positive, got {value}", field=field)
    if value < 0:
        raise ValidationError(f"{field} must be non-negative, got {value}", field=field)
    return value


def validate_money(value: Any, field: str) -> Decimal:
    """Return ``value`` as a non-negative Decimal."""
    try:
        amount = to_money(value)
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from exc
    if amount < 0:
        raise ValidationError(f"{field} must be non-negative, got {amount}", field=field)
    return amount


def validate_text(value: Any, field: str, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters", field=field
        )
    return text


def validate_thresholds(min_threshold: int, max_threshold: int) -> None:
    if min_threshold > max_threshold:
        raise ValidationError(
            f"min_threshold ({min_threshold}) must not exceed "
            f"max_threshold ({max_threshold})",
            field="min_threshold",
        )


def validate_product_spec(spec: ProductSpec) -> ProductSpec:
    """Validate every field of ``spec``; returns a normalized copy."""
    normalized = ProductSpec(
        name=validate_text(spec.name, "name", MAX_NAME_LENGTH),
        initial_quantity=validate_quantity(spec.initial_quantity, "initial_quantity"),
        cost_price=validate_money(spec.cost_price, "cost_price"),
        selling_price=validate_money(spec.selling_price, "selling_price"),
        min_threshold=validate_quantity(spec.min_threshold, "min_threshold"),
        max_threshold=validate_quantity(spec.max_threshold, "max_threshold"),
        category=validate_text(spec.category, "category", MAX_CATEGORY_LENGTH),
    )
    validate_thresholds(normalized.min_threshold, normalized.max_threshold)
    return normalized


def validate_transaction_type(value: Any) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown transaction type: {value!r}", field="type"
        ) from None


def validate_product_id(value: Any, field: str = "productId") -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid product id: {value!r}", field=field) from None


def validate_threshold_param(value: Any) -> int | None:
    """Parse the optional ``threshold`` query parameter of the low-stock list."""
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip().isdecimal():
            raise ValidationError(
                f"threshold must be a non-negative integer, got {value!r}",
                field="threshold",
            )
        value = int(value)
    return validate_quantity(value, "threshold")


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _canonical_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in payload.items():
        field = FIELD_ALIASES.get(key, key)
        result[field] = value
    return result


def _whole_number(value: Any) -> Any:
    # JSON clients send 10.0 for 10; anything fractional stays invalid
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value)
    return value


def parse_product_payload(
    payload: Mapping[str, Any],
    defaults: ProductDefaults | None = None,
) -> ProductSpec:
    """
    Build a ProductSpec from a create payload.

    Missing or null optional fields take their documented default.
    ``remainingQuantity`` may be sent (the dashboard form does) but must
    equal ``initialQuantity``; new products always start full.

    Raises:
        ValidationError: on unknown fields or constraint violations.
    """
    defaults = defaults or ProductDefaults()
    data = _canonical_keys(payload)

    unknown = set(data) - MUTABLE_FIELDS - {"initial_quantity", "remaining_quantity"}
    if unknown:
        raise ValidationError(
            f"Unknown product fields: {sorted(unknown)}", field=sorted(unknown)[0]
        )
    if data.get("initial_quantity") is None:
        raise ValidationError("initial_quantity is required", field="initial_quantity")

    initial = _whole_number(data["initial_quantity"])
    remaining = data.get("remaining_quantity")
    if remaining is not None and _whole_number(remaining) != initial:
        raise ValidationError(
            "remaining_quantity must equal initial_quantity on create",
            field="remaining_quantity",
        )

    def pick(field: str, default: Any) -> Any:
        value = data.get(field)
        return default if value is None else value

    spec = ProductSpec(
        name=data.get("name"),
        initial_quantity=initial,
        cost_price=pick("cost_price", defaults.cost_price),
        selling_price=pick("selling_price", defaults.selling_price),
        min_threshold=_whole_number(pick("min_threshold", defaults.min_threshold)),
        max_threshold=_whole_number(pick("max_threshold", defaults.max_threshold)),
        category=pick("category", defaults.category),
    )
    return validate_product_spec(spec)


def parse_product_patch(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize an update patch to kernel field names.

    Only the mutable fields may appear.  The dashboard's edit form resends
    the whole record, so quantity fields are rejected only when present --
    the catalog compares them against the stored values.
    """
    data = _canonical_keys(payload)
    unknown = set(data) - MUTABLE_FIELDS - QUANTITY_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown product fields: {sorted(unknown)}", field=sorted(unknown)[0]
        )
    patch: dict[str, Any] = {}
    for field, value in data.items():
        if field in ("min_threshold", "max_threshold") or field in QUANTITY_FIELDS:
            value = _whole_number(value)
        patch[field] = value
    return patch


def parse_receipt_payload(payload: Mapping[str, Any]) -> list[ReceiptLine]:
    """
    Parse a POST /receipts body.

    Accepts ``{productId, quantity}`` or ``{items: [{productId, quantity}, ...]}``.
    """
    if "items" in payload:
        items = payload["items"]
        if not isinstance(items, list) or not items:
            raise ValidationError("items must be a non-empty list", field="items")
    else:
        items = [payload]

    lines = []
    for item in items:
        if not isinstance(item, Mapping):
            raise ValidationError("receipt items must be objects", field="items")
        if "productId" not in item or "quantity" not in item:
            raise ValidationError(
                "receipt items need productId and quantity", field="items"
            )
        lines.append(
            ReceiptLine(
                product_id=validate_product_id(item["productId"]),
                quantity=validate_quantity(
                    _whole_number(item["quantity"]), "quantity", positive=True
                ),
            )
        )
    return lines
