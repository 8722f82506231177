from __future__ import annotations

import re
from typing import Any

from .errors import ValidationError
from .models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_STOCK_IN, MOVEMENT_STOCK_OUT
from .models.sales import PAYMENT_METHODS


# Maximum price: P9,999,999.99 (999,999,999 centavos)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MAX_NOTES_LENGTH = 500

# Manual movements a user may request; sale and initial_stock are system-only.
MANUAL_MOVEMENT_TYPES = (MOVEMENT_STOCK_IN, MOVEMENT_STOCK_OUT, MOVEMENT_ADJUSTMENT)

SKU_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for JSON/form input.

    Rejects bools, floats, decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)",
                details={"field": field},
            )
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", details={"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    raise ValidationError(f"{field} must be an integer", details={"field": field})


def require_int(data: dict, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    if data.get(field) is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    value = coerce_int(data[field], field)
    check_range(value, field, minimum=minimum, maximum=maximum)
    return value


def optional_int(data: dict, field: str, default: int | None = None, **bounds) -> int | None:
    if data.get(field) is None:
        return default
    value = coerce_int(data[field], field)
    check_range(value, field, **bounds)
    return value


def check_range(value: int, field: str, *, minimum: int | None = None, maximum: int | None = None) -> None:
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={"field": field, "value": value})
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={"field": field, "value": value})


def require_str(data: dict, field: str, *, max_length: int = 255) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", details={"field": field})
    return value


def optional_str(data: dict, field: str, *, max_length: int = 255) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={"field": field})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", details={"field": field})
    return value or None


def optional_bool(data: dict, field: str, default: bool) -> bool:
    value = data.get(field)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", details={"field": field})
    return value


def validate_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(
            f"notes must be at most {MAX_NOTES_LENGTH} characters",
            details={"field": "notes"},
        )
    return notes


def validate_sku(sku: str) -> str:
    sku = (sku or "").strip()
    if not sku or len(sku) > 100 or not SKU_PATTERN.match(sku):
        raise ValidationError(
            "sku may only contain letters, numbers and hyphens",
            details={"field": "sku", "sku": sku},
        )
    return sku


def validate_payment_method(method: str) -> str:
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"field": "payment_method"},
        )
    return method


def validate_movement_request(movement_type: str, quantity: int) -> None:
    """
    stock_in / stock_out take a positive magnitude; adjustment a signed,
    non-zero delta.
    """
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of: {', '.join(MANUAL_MOVEMENT_TYPES)}",
            details={"field": "movement_type"},
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", details={"field": "quantity"})
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity == 0:
            raise ValidationError("adjustment quantity must be non-zero", details={"field": "quantity"})
    elif quantity <= 0:
        raise ValidationError(
            f"{movement_type} quantity must be a positive integer",
            details={"field": "quantity"},
        )


# =============================================================================
# Request payload parsing (routes)
# =============================================================================

def parse_sale_request(data: dict) -> dict:
    """Validate POST /api/transactions. Returns kwargs for process_sale."""
    branch_id = require_int(data, "branch_id", minimum=1)
    payment_method = validate_payment_method(data.get("payment_method"))

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})

    # services import this module at load time
    from .services.sales_service import SaleLineInput

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"index": index})
        items.append(SaleLineInput(
            variant_id=require_int(raw, "variant_id", minimum=1),
            quantity=require_int(raw, "quantity", minimum=1),
            unit_price=require_int(raw, "unit_price", minimum=0, maximum=MAX_PRICE_CENTS),
            unit_capital_cost=require_int(raw, "unit_capital_cost", minimum=0, maximum=MAX_PRICE_CENTS),
        ))

    return {
        "branch_id": branch_id,
        "payment_method": payment_method,
        "items": items,
        "customer_name": optional_str(data, "customer_name"),
        "customer_notes": validate_notes(optional_str(data, "customer_notes", max_length=MAX_NOTES_LENGTH)),
    }


def parse_adjustment_request(data: dict) -> dict:
    movement_type = data.get("movement_type")
    quantity = require_int(data, "quantity")
    validate_movement_request(movement_type, quantity)
    return {
        "branch_id": require_int(data, "branch_id", minimum=1),
        "variant_id": require_int(data, "variant_id", minimum=1),
        "quantity": quantity,
        "movement_type": movement_type,
        "notes": optional_str(data, "notes", max_length=MAX_NOTES_LENGTH),
    }


def parse_count_request(data: dict) -> dict:
    return {
        "branch_id": require_int(data, "branch_id", minimum=1),
        "variant_id": require_int(data, "variant_id", minimum=1),
        "counted_quantity": require_int(data, "counted_quantity", minimum=0),
        "notes": optional_str(data, "notes", max_length=MAX_NOTES_LENGTH),
    }


def _parse_variants(raw_variants: Any, field: str = "variants") -> list:
    from .services.catalog_service import VariantInput

    if not isinstance(raw_variants, list) or not raw_variants:
        raise ValidationError(f"{field} must be a non-empty list", details={"field": field})

    variants = []
    for index, raw in enumerate(raw_variants):
        if not isinstance(raw, dict):
            raise ValidationError(f"{field}[{index}] must be an object", details={"index": index})
        variants.append(VariantInput(
            name=require_str(raw, "name"),
            sku=validate_sku(raw.get("sku") or ""),
            selling_price=require_int(raw, "selling_price", minimum=0, maximum=MAX_PRICE_CENTS),
            capital_cost=require_int(raw, "capital_cost", minimum=0, maximum=MAX_PRICE_CENTS),
            low_stock_threshold=optional_int(raw, "low_stock_threshold", default=10, minimum=0),
            initial_stock=optional_int(raw, "initial_stock", default=0, minimum=0),
        ))
    return variants


def parse_product_request(data: dict) -> dict:
    return {
        "name": require_str(data, "name"),
        "variants": _parse_variants(data.get("variants")),
        "brand": optional_str(data, "brand"),
        "description": optional_str(data, "description", max_length=5000),
        "category_id": optional_int(data, "category_id", minimum=1),
        "is_active": optional_bool(data, "is_active", default=True),
    }


def parse_product_update(data: dict) -> dict:
    """
    PATCH body: any subset of name, brand, description, category_id, plus
    add_variants (same shape as variants on create). category_id null
    clears the category.
    """
    allowed = ("name", "brand", "description", "category_id", "add_variants")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(unknown)}",
            details={"fields": unknown},
        )

    changes = {}
    if "name" in data:
        changes["name"] = require_str(data, "name")
    if "brand" in data:
        changes["brand"] = optional_str(data, "brand")
    if "description" in data:
        changes["description"] = optional_str(data, "description", max_length=5000)
    if "category_id" in data:
        changes["category_id"] = optional_int(data, "category_id", minimum=1)
    if "add_variants" in data:
        changes["add_variants"] = _parse_variants(data["add_variants"], "add_variants")
    if not changes:
        raise ValidationError("No changes given")
    return changes


def parse_branch_request(data: dict) -> dict:
    return {
        "name": require_str(data, "name"),
        "address": optional_str(data, "address", max_length=1000),
        "phone": optional_str(data, "phone", max_length=50),
        "is_default": optional_bool(data, "is_default", default=False),
    }


def parse_variant_update(data: dict) -> dict:
    """PATCH body: any subset of name, selling_price, capital_cost, low_stock_threshold."""
    allowed = ("name", "selling_price", "capital_cost", "low_stock_threshold")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(unknown)}",
            details={"fields": unknown},
        )

    changes = {}
    if "name" in data:
        changes["name"] = require_str(data, "name")
    for field in ("selling_price", "capital_cost"):
        if field in data:
            changes[field] = require_int(data, field, minimum=0, maximum=MAX_PRICE_CENTS)
    if "low_stock_threshold" in data:
        changes["low_stock_threshold"] = require_int(data, "low_stock_threshold", minimum=0)
    if not changes:
        raise ValidationError("No changes given")
    return changes


def parse_state_request(data: dict) -> str:
    state = data.get("lifecycle_state")
    if not isinstance(state, str) or not state:
        raise ValidationError("lifecycle_state is required", details={"field": "lifecycle_state"})
    return state


def parse_branch_update(data: dict) -> dict:
    """PATCH body: any subset of name, address, phone, is_active, is_default."""
    allowed = ("name", "address", "phone", "is_active", "is_default")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(unknown)}",
            details={"fields": unknown},
        )

    changes = {}
    if "name" in data:
        changes["name"] = require_str(data, "name")
    if "address" in data:
        changes["address"] = optional_str(data, "address", max_length=1000)
    if "phone" in data:
        changes["phone"] = optional_str(data, "phone", max_length=50)
    for field in ("is_active", "is_default"):
        if field in data:
            if not isinstance(data[field], bool):
                raise ValidationError(f"{field} must be a boolean", details={"field": field})
            changes[field] = data[field]
    if not changes:
        raise ValidationError("No changes given")
    return changes


def parse_category_request(data: dict) -> dict:
    return {
        "name": require_str(data, "name"),
        "description": optional_str(data, "description", max_length=5000),
        "display_order": optional_int(data, "display_order", default=0, minimum=0),
    }


def parse_category_update(data: dict) -> dict:
    allowed = ("name", "description", "display_order")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(unknown)}",
            details={"fields": unknown},
        )

    changes = {}
    if "name" in data:
        changes["name"] = require_str(data, "name")
    if "description" in data:
        changes["description"] = optional_str(data, "description", max_length=5000)
    if "display_order" in data:
        changes["display_order"] = require_int(data, "display_order", minimum=0)
    if not changes:
        raise ValidationError("No changes given")
    return changes
