# Overview: Manual stock adjustments, physical counts and inventory read models.

"""
Stock Adjustment Engine

Movement types a user can request:

    stock_in    positive magnitude, added
    stock_out   positive magnitude, removed; rejected with
                InsufficientStockError when current stock < magnitude
    adjustment  signed, non-zero delta; the result is clamped at 0

The movement row stores the effective change (after - before), so a clamped
adjustment still reconciles with the replayed ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_

from ..errors import InsufficientStockError, InvalidVariantError, ValidationError
from ..extensions import db
from ..models import InventoryRecord, Product, ProductVariant, StockMovement, User
from ..models.catalog import STATE_DELETED
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_STOCK_IN,
    MOVEMENT_STOCK_OUT,
    MOVEMENT_TYPES,
    REFERENCE_MANUAL,
)
from ..time_utils import to_utc_z
from ..validation import MAX_NOTES_LENGTH, validate_movement_request, validate_notes
from .catalog_service import resolve_variant
from .concurrency import run_atomic
from .ledger_service import apply_change, lock_and_read
from .tenant_service import require_branch_in_org, require_user_in_org


DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class AdjustmentResult:
    quantity_before: int
    quantity_after: int
    movement_id: int | None = None

    @property
    def quantity_change(self) -> int:
        return self.quantity_after - self.quantity_before

    def to_dict(self) -> dict:
        return {
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "quantity_change": self.quantity_change,
            "movement_id": self.movement_id,
        }


def _authorize_and_resolve(organization_id: int, branch_id: int, user_id: int, variant_id: int):
    require_user_in_org(user_id, organization_id)
    require_branch_in_org(branch_id, organization_id)

    snapshot = resolve_variant(organization_id, variant_id)
    if snapshot is None:
        raise InvalidVariantError("Product variant not found", details={"variant_id": variant_id})
    return snapshot


def adjust_stock(
    *,
    organization_id: int,
    branch_id: int,
    user_id: int,
    variant_id: int,
    quantity: int,
    movement_type: str,
    notes: str | None = None,
) -> AdjustmentResult:
    """
    Apply a manual stock movement to one (branch, variant) atomically.

    Raises:
        ValidationError: bad movement_type / quantity / notes
        UnauthorizedError, InvalidBranchError, InvalidVariantError
        InsufficientStockError: stock_out larger than current stock
        TransactionFailedError: storage failure (rolled back)
    """
    validate_movement_request(movement_type, quantity)
    notes = validate_notes(notes)

    def _op() -> AdjustmentResult:
        snapshot = _authorize_and_resolve(organization_id, branch_id, user_id, variant_id)

        locked = lock_and_read(organization_id, branch_id, variant_id, create_missing=True)
        before = locked.quantity

        if movement_type == MOVEMENT_STOCK_IN:
            after = before + quantity
        elif movement_type == MOVEMENT_STOCK_OUT:
            if before < quantity:
                current_app.logger.warning(
                    "Stock out rejected: org=%s branch=%s variant=%s available=%s requested=%s",
                    organization_id, branch_id, variant_id, before, quantity,
                )
                raise InsufficientStockError(
                    product_name=snapshot.product_name,
                    variant_name=snapshot.variant_name,
                    available=before,
                    requested=quantity,
                    variant_id=variant_id,
                )
            after = before - quantity
        else:
            after = max(0, before + quantity)

        movement = apply_change(
            locked,
            after,
            user_id=user_id,
            movement_type=movement_type,
            reference_type=REFERENCE_MANUAL,
            notes=notes,
        )
        return AdjustmentResult(quantity_before=before, quantity_after=after, movement_id=movement.id)

    result = run_atomic(_op, description="adjust stock")
    current_app.logger.info(
        "Stock adjusted: org=%s branch=%s variant=%s type=%s %s -> %s",
        organization_id, branch_id, variant_id, movement_type,
        result.quantity_before, result.quantity_after,
    )
    return result


def count_stock(
    *,
    organization_id: int,
    branch_id: int,
    user_id: int,
    variant_id: int,
    counted_quantity: int,
    notes: str | None = None,
) -> AdjustmentResult:
    """
    Record a physical count: set stock to counted_quantity.

    Writes an adjustment movement with the effective delta and stamps
    last_counted_at. A count that matches the system quantity still leaves
    a zero-change movement behind as the count record.
    """
    if isinstance(counted_quantity, bool) or not isinstance(counted_quantity, int):
        raise ValidationError("counted_quantity must be an integer", details={"field": "counted_quantity"})
    if counted_quantity < 0:
        raise ValidationError("counted_quantity must be >= 0", details={"field": "counted_quantity"})
    notes = validate_notes(notes)

    def _op() -> AdjustmentResult:
        _authorize_and_resolve(organization_id, branch_id, user_id, variant_id)

        locked = lock_and_read(organization_id, branch_id, variant_id, create_missing=True)
        before = locked.quantity
        movement = apply_change(
            locked,
            counted_quantity,
            user_id=user_id,
            movement_type=MOVEMENT_ADJUSTMENT,
            reference_type=REFERENCE_MANUAL,
            notes=notes or "Physical count",
            counted=True,
        )
        return AdjustmentResult(quantity_before=before, quantity_after=counted_quantity, movement_id=movement.id)

    result = run_atomic(_op, description="record stock count")
    current_app.logger.info(
        "Stock counted: org=%s branch=%s variant=%s %s -> %s",
        organization_id, branch_id, variant_id, result.quantity_before, result.quantity_after,
    )
    return result


# =============================================================================
# Read models
# =============================================================================

def list_stock_levels(organization_id: int, branch_id: int | None = None) -> list[dict]:
    """
    Stock grouped by product.

    With branch_id: that branch's quantities. Without: quantities summed
    across all branches of the organization. Deleted variants and products
    are left out.
    """
    if branch_id is not None:
        require_branch_in_org(branch_id, organization_id)

    query = (
        db.session.query(
            Product,
            ProductVariant,
            func.coalesce(func.sum(InventoryRecord.quantity), 0),
            func.max(InventoryRecord.last_counted_at),
        )
        .join(ProductVariant, ProductVariant.product_id == Product.id)
        .join(InventoryRecord, InventoryRecord.variant_id == ProductVariant.id)
        .filter(
            InventoryRecord.organization_id == organization_id,
            Product.lifecycle_state != STATE_DELETED,
            ProductVariant.lifecycle_state != STATE_DELETED,
        )
    )
    if branch_id is not None:
        query = query.filter(InventoryRecord.branch_id == branch_id)

    rows = (
        query.group_by(Product.id, ProductVariant.id)
        .order_by(Product.name, ProductVariant.name, ProductVariant.id)
        .all()
    )

    groups: dict[int, dict] = {}
    for product, variant, quantity, last_counted_at in rows:
        group = groups.get(product.id)
        if group is None:
            group = groups[product.id] = {
                "product_id": product.id,
                "product_name": product.name,
                "brand": product.brand,
                "lifecycle_state": product.lifecycle_state,
                "total_quantity": 0,
                "has_low_stock": False,
                "variants": [],
            }

        quantity = int(quantity)
        is_low_stock = quantity <= variant.low_stock_threshold
        group["variants"].append({
            "variant_id": variant.id,
            "variant_name": variant.name,
            "sku": variant.sku,
            "quantity": quantity,
            "low_stock_threshold": variant.low_stock_threshold,
            "is_low_stock": is_low_stock,
            "last_counted_at": to_utc_z(last_counted_at),
        })
        group["total_quantity"] += quantity
        group["has_low_stock"] = group["has_low_stock"] or is_low_stock

    return list(groups.values())


def list_stock_movements(
    organization_id: int,
    *,
    branch_id: int | None = None,
    variant_id: int | None = None,
    movement_type: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """
    Movement history, newest first.

    search matches product name, variant name, SKU or notes
    (case-insensitive). date_to is inclusive.

    Returns {"movements": [...], "total", "page", "page_size", "pages"}.
    """
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}",
            details={"field": "movement_type"},
        )
    if page < 1:
        raise ValidationError("page must be >= 1", details={"field": "page"})
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValidationError(
            f"page_size must be between 1 and {MAX_PAGE_SIZE}",
            details={"field": "page_size"},
        )

    query = (
        db.session.query(StockMovement, ProductVariant, Product, User)
        .join(ProductVariant, StockMovement.variant_id == ProductVariant.id)
        .join(Product, ProductVariant.product_id == Product.id)
        .outerjoin(User, StockMovement.user_id == User.id)
        .filter(StockMovement.organization_id == organization_id)
    )

    if branch_id is not None:
        query = query.filter(StockMovement.branch_id == branch_id)
    if variant_id is not None:
        query = query.filter(StockMovement.variant_id == variant_id)
    if movement_type is not None:
        query = query.filter(StockMovement.movement_type == movement_type)
    if date_from is not None:
        query = query.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StockMovement.created_at <= date_to)
    if search:
        pattern = f"%{search.strip()[:MAX_NOTES_LENGTH]}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            ProductVariant.name.ilike(pattern),
            ProductVariant.sku.ilike(pattern),
            StockMovement.notes.ilike(pattern),
        ))

    total = query.count()
    rows = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    movements = []
    for movement, variant, product, user in rows:
        data = movement.to_dict()
        data["product_name"] = product.name
        data["variant_name"] = variant.name
        data["sku"] = variant.sku
        data["user_name"] = user.full_name if user is not None else None
        movements.append(data)

    return {
        "movements": movements,
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": (total + page_size - 1) // page_size,
    }
