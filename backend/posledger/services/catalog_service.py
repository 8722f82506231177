# Overview: Catalog store; products, variants, categories and the sale-time variant lookup.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import ConflictError, InvalidVariantError, LifecycleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, InventoryRecord, Product, ProductVariant
from ..models.catalog import STATE_ACTIVE, STATE_DELETED, STATE_INACTIVE
from ..models.inventory import MOVEMENT_INITIAL_STOCK, REFERENCE_PRODUCT
from ..slug_utils import slugify, unique_slug
from ..time_utils import utcnow
from ..validation import MAX_PRICE_CENTS, check_range, validate_sku
from . import audit_service, lifecycle_service
from .concurrency import run_atomic
from .ledger_service import apply_change, lock_and_read
from .tenant_service import get_org_branches, require_branch_in_org, require_user_in_org


@dataclass(frozen=True)
class VariantSnapshot:
    """
    Catalog data copied onto a TransactionItem at sale time.

    is_sellable is False for inactive variants or products; those can still
    be sold from an open cart, but are hidden from the POS catalog.
    """
    variant_id: int
    product_id: int
    product_name: str
    variant_name: str
    sku: str
    selling_price: int
    capital_cost: int
    is_sellable: bool


@dataclass
class VariantInput:
    name: str
    sku: str
    selling_price: int
    capital_cost: int
    low_stock_threshold: int = 10
    initial_stock: int = 0


# Fields the update_* functions accept
VARIANT_EDITABLE_FIELDS = ("name", "selling_price", "capital_cost", "low_stock_threshold")
PRODUCT_EDITABLE_FIELDS = ("name", "brand", "description", "category_id")
CATEGORY_EDITABLE_FIELDS = ("name", "description", "display_order")

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def resolve_variant(organization_id: int, variant_id: int) -> VariantSnapshot | None:
    """
    Look up a variant for selling or stock changes.

    Returns None when the variant doesn't exist, belongs to another
    organization, or it or its product is deleted.
    """
    row = (
        db.session.query(ProductVariant, Product)
        .join(Product, ProductVariant.product_id == Product.id)
        .filter(
            ProductVariant.id == variant_id,
            ProductVariant.organization_id == organization_id,
            Product.organization_id == organization_id,
            ProductVariant.lifecycle_state != STATE_DELETED,
            Product.lifecycle_state != STATE_DELETED,
        )
        .first()
    )
    if row is None:
        return None

    variant, product = row
    return VariantSnapshot(
        variant_id=variant.id,
        product_id=product.id,
        product_name=product.name,
        variant_name=variant.name,
        sku=variant.sku,
        selling_price=variant.selling_price,
        capital_cost=variant.capital_cost,
        is_sellable=variant.is_active and product.is_active,
    )


def list_sellable_variants(organization_id: int, branch_id: int) -> list[dict]:
    """The POS catalog: active variants of active products with this branch's stock."""
    require_branch_in_org(branch_id, organization_id)

    rows = (
        db.session.query(ProductVariant, Product, InventoryRecord.quantity)
        .join(Product, ProductVariant.product_id == Product.id)
        .outerjoin(
            InventoryRecord,
            (InventoryRecord.variant_id == ProductVariant.id)
            & (InventoryRecord.branch_id == branch_id),
        )
        .filter(
            ProductVariant.organization_id == organization_id,
            ProductVariant.lifecycle_state == STATE_ACTIVE,
            Product.lifecycle_state == STATE_ACTIVE,
        )
        .order_by(Product.name, ProductVariant.name, ProductVariant.id)
        .all()
    )

    return [
        {
            "variant_id": variant.id,
            "product_id": product.id,
            "product_name": product.name,
            "brand": product.brand,
            "variant_name": variant.name,
            "sku": variant.sku,
            "selling_price": variant.selling_price,
            "capital_cost": variant.capital_cost,
            "quantity": quantity or 0,
        }
        for variant, product, quantity in rows
    ]


def _get_category(organization_id: int, category_id: int) -> Category:
    category = db.session.query(Category).filter_by(
        id=category_id, organization_id=organization_id
    ).first()
    if category is None or category.deleted_at is not None:
        raise NotFoundError("Category not found", details={"category_id": category_id})
    return category


def _require_category(organization_id: int, category_id: int | None) -> None:
    """A product may only point at a live category of its own organization."""
    if category_id is None:
        return
    try:
        _get_category(organization_id, category_id)
    except NotFoundError:
        raise ValidationError("Category not found", details={"category_id": category_id})


def list_categories(
    organization_id: int,
    *,
    search: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """
    Live categories ordered by display_order, then name.

    Returns {"categories": [...], "total", "page", "page_size", "pages"}.
    """
    if page < 1:
        raise ValidationError("page must be >= 1", details={"field": "page"})
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValidationError(
            f"page_size must be between 1 and {MAX_PAGE_SIZE}",
            details={"field": "page_size"},
        )

    query = db.session.query(Category).filter(
        Category.organization_id == organization_id,
        Category.deleted_at.is_(None),
    )
    if search:
        query = query.filter(Category.name.ilike(f"%{search.strip()}%"))

    total = query.count()
    rows = (
        query.order_by(Category.display_order, Category.name, Category.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "categories": [c.to_dict() for c in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": (total + page_size - 1) // page_size,
    }


def create_category(
    organization_id: int,
    name: str,
    description: str | None = None,
    *,
    user_id: int | None = None,
    display_order: int = 0,
) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    check_range(display_order, "display_order", minimum=0)

    def _op() -> Category:
        if user_id is not None:
            require_user_in_org(user_id, organization_id)
        slug = unique_slug(
            slugify(name),
            lambda s: db.session.query(Category.id).filter_by(organization_id=organization_id, slug=s).first() is not None,
        )
        category = Category(
            organization_id=organization_id,
            name=name,
            slug=slug,
            description=description,
            display_order=display_order,
        )
        db.session.add(category)
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_CREATE_CATEGORY,
            entity_type="category",
            entity_id=category.id,
            new_values={"name": name, "slug": slug},
        )
        return category

    return run_atomic(_op, description="create category")


def update_category(*, organization_id: int, user_id: int, category_id: int, **changes) -> Category:
    """Edit name, description or display_order. The slug is kept."""
    unknown = set(changes) - set(CATEGORY_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise ValidationError("name is required", details={"field": "name"})
    if "display_order" in changes:
        check_range(changes["display_order"], "display_order", minimum=0)

    def _op() -> Category:
        require_user_in_org(user_id, organization_id)
        category = _get_category(organization_id, category_id)

        old_values = {field: getattr(category, field) for field in changes}
        for field, value in changes.items():
            setattr(category, field, value)
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_UPDATE_CATEGORY,
            entity_type="category",
            entity_id=category.id,
            old_values=old_values,
            new_values={field: getattr(category, field) for field in changes},
        )
        return category

    return run_atomic(_op, description="update category")


def delete_category(*, organization_id: int, user_id: int, category_id: int) -> Category:
    """
    Soft-delete a category.

    Products keep their category_id; the category just stops being
    listed and assignable.
    """
    def _op() -> Category:
        require_user_in_org(user_id, organization_id)
        category = _get_category(organization_id, category_id)
        category.deleted_at = utcnow()
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_DELETE_CATEGORY,
            entity_type="category",
            entity_id=category.id,
            old_values={"name": category.name},
        )
        return category

    category = run_atomic(_op, description="delete category")
    current_app.logger.info("Category deleted: org=%s category=%s", organization_id, category_id)
    return category


def _validate_variants(variants: list[VariantInput]) -> None:
    if not variants:
        raise ValidationError("At least one variant is required", details={"field": "variants"})

    seen: set[str] = set()
    for v in variants:
        v.sku = validate_sku(v.sku)
        if not (v.name or "").strip():
            raise ValidationError("variant name is required", details={"field": "name", "sku": v.sku})
        check_range(v.selling_price, "selling_price", minimum=0, maximum=MAX_PRICE_CENTS)
        check_range(v.capital_cost, "capital_cost", minimum=0, maximum=MAX_PRICE_CENTS)
        check_range(v.low_stock_threshold, "low_stock_threshold", minimum=0)
        check_range(v.initial_stock, "initial_stock", minimum=0)

        key = v.sku.lower()
        if key in seen:
            raise ConflictError(f"Duplicate SKU in request: {v.sku}", details={"sku": v.sku})
        seen.add(key)


def _require_skus_free(organization_id: int, skus: list[str]) -> None:
    taken = (
        db.session.query(ProductVariant.sku)
        .filter(
            ProductVariant.organization_id == organization_id,
            ProductVariant.sku.in_(skus),
        )
        .all()
    )
    if taken:
        raise ConflictError(
            f"SKU already exists: {taken[0][0]}",
            details={"skus": sorted(row[0] for row in taken)},
        )


def _add_variants(
    organization_id: int,
    user_id: int,
    product: Product,
    variants: list[VariantInput],
) -> list[tuple[ProductVariant, int]]:
    """
    Insert variants of product and seed their stock.

    Every active branch gets an inventory record per new variant holding
    initial_stock, with an initial_stock movement for positive quantities.
    """
    created = []
    for v in variants:
        variant = ProductVariant(
            organization_id=organization_id,
            product_id=product.id,
            name=v.name.strip(),
            sku=v.sku,
            selling_price=v.selling_price,
            capital_cost=v.capital_cost,
            low_stock_threshold=v.low_stock_threshold,
        )
        db.session.add(variant)
        created.append((variant, v.initial_stock))
    db.session.flush()

    for branch in get_org_branches(organization_id):
        for variant, initial_stock in created:
            locked = lock_and_read(organization_id, branch.id, variant.id, create_missing=True)
            if initial_stock > 0:
                apply_change(
                    locked,
                    locked.quantity + initial_stock,
                    user_id=user_id,
                    movement_type=MOVEMENT_INITIAL_STOCK,
                    reference_type=REFERENCE_PRODUCT,
                    reference_id=product.id,
                    notes="Initial stock",
                )
    return created


def create_product(
    *,
    organization_id: int,
    user_id: int,
    name: str,
    variants: list[VariantInput],
    brand: str | None = None,
    description: str | None = None,
    category_id: int | None = None,
    is_active: bool = True,
) -> Product:
    """
    Create a product with its variants and seed inventory in one unit of work.

    One inventory record is created per (active branch, variant) holding the
    variant's initial_stock, and an initial_stock movement is written for
    every positive quantity. Nothing is persisted if any step fails.

    Raises:
        ValidationError: bad input or unknown category
        ConflictError: SKU already used in this organization
        UnauthorizedError: user is not an active member
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    _validate_variants(variants)

    def _op() -> Product:
        require_user_in_org(user_id, organization_id)
        _require_category(organization_id, category_id)
        _require_skus_free(organization_id, [v.sku for v in variants])

        slug = unique_slug(
            slugify(name),
            lambda s: db.session.query(Product.id).filter_by(organization_id=organization_id, slug=s).first() is not None,
        )
        product = Product(
            organization_id=organization_id,
            category_id=category_id,
            name=name,
            slug=slug,
            brand=brand,
            description=description,
            lifecycle_state=STATE_ACTIVE if is_active else STATE_INACTIVE,
        )
        db.session.add(product)
        db.session.flush()

        created = _add_variants(organization_id, user_id, product, variants)

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_CREATE_PRODUCT,
            entity_type="product",
            entity_id=product.id,
            new_values={
                "name": product.name,
                "variants": [
                    {"id": variant.id, "sku": variant.sku, "initial_stock": initial_stock}
                    for variant, initial_stock in created
                ],
            },
        )
        return product

    product = run_atomic(_op, description="create product")
    current_app.logger.info(
        "Product created: org=%s product=%s variants=%d",
        organization_id, product.id, len(variants),
    )
    return product


def update_product(
    *,
    organization_id: int,
    user_id: int,
    product_id: int,
    add_variants: list[VariantInput] | None = None,
    **changes,
) -> Product:
    """
    Edit product fields (name, brand, description, category_id) and add
    variants in one unit of work.

    New variants are seeded in every active branch the way create_product
    seeds them. Existing variants are left alone; they are edited through
    update_variant() and removed through set_variant_state().

    Raises:
        ValidationError: bad input, unknown category or nothing to change
        ConflictError: a new SKU is already used in this organization
        NotFoundError: product missing or in another organization
        LifecycleError: product is deleted
    """
    add_variants = list(add_variants or [])
    unknown = set(changes) - set(PRODUCT_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )
    if not changes and not add_variants:
        raise ValidationError("No changes given")
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise ValidationError("name is required", details={"field": "name"})
    if add_variants:
        _validate_variants(add_variants)

    def _op() -> Product:
        require_user_in_org(user_id, organization_id)
        product = db.session.query(Product).filter_by(id=product_id, organization_id=organization_id).first()
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        if product.lifecycle_state == STATE_DELETED:
            raise LifecycleError("Cannot edit a deleted product", details={"product_id": product_id})

        if changes.get("category_id") is not None and changes["category_id"] != product.category_id:
            _require_category(organization_id, changes["category_id"])

        old_values = {field: getattr(product, field) for field in changes}
        for field, value in changes.items():
            setattr(product, field, value)
        db.session.flush()

        new_values = {field: getattr(product, field) for field in changes}
        if add_variants:
            _require_skus_free(organization_id, [v.sku for v in add_variants])
            created = _add_variants(organization_id, user_id, product, add_variants)
            new_values["added_variants"] = [
                {"id": variant.id, "sku": variant.sku, "initial_stock": initial_stock}
                for variant, initial_stock in created
            ]

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_UPDATE_PRODUCT,
            entity_type="product",
            entity_id=product.id,
            old_values=old_values,
            new_values=new_values,
        )
        return product

    product = run_atomic(_op, description="update product")
    current_app.logger.info(
        "Product updated: org=%s product=%s fields=%s added_variants=%d",
        organization_id, product_id, ",".join(sorted(changes)), len(add_variants),
    )
    return product


def _get_variant(organization_id: int, variant_id: int) -> ProductVariant:
    variant = db.session.query(ProductVariant).filter_by(
        id=variant_id, organization_id=organization_id
    ).first()
    if variant is None:
        raise InvalidVariantError("Variant not found", details={"variant_id": variant_id})
    return variant


def update_variant(*, organization_id: int, user_id: int, variant_id: int, **changes) -> ProductVariant:
    """
    Edit name/price/cost/threshold of a variant.

    Past TransactionItems keep their snapshot values.
    """
    unknown = set(changes) - set(VARIANT_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )
    for field in ("selling_price", "capital_cost"):
        if field in changes:
            check_range(changes[field], field, minimum=0, maximum=MAX_PRICE_CENTS)
    if "low_stock_threshold" in changes:
        check_range(changes["low_stock_threshold"], "low_stock_threshold", minimum=0)
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("name is required", details={"field": "name"})

    def _op() -> ProductVariant:
        require_user_in_org(user_id, organization_id)
        variant = _get_variant(organization_id, variant_id)
        if variant.lifecycle_state == STATE_DELETED:
            raise LifecycleError("Cannot edit a deleted variant", details={"variant_id": variant_id})

        old_values = {field: getattr(variant, field) for field in changes}
        for field, value in changes.items():
            setattr(variant, field, value.strip() if field == "name" else value)
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_UPDATE_VARIANT,
            entity_type="product_variant",
            entity_id=variant.id,
            old_values=old_values,
            new_values={field: getattr(variant, field) for field in changes},
        )
        return variant

    return run_atomic(_op, description="update variant")


def set_product_state(*, organization_id: int, user_id: int, product_id: int, state: str) -> Product:
    """
    Change a product's lifecycle state.

    Deleting a product also deletes its variants that are not yet deleted.
    """
    lifecycle_service.validate_state(state)

    def _op() -> Product:
        require_user_in_org(user_id, organization_id)
        product = db.session.query(Product).filter_by(id=product_id, organization_id=organization_id).first()
        if product is None:
            raise ValidationError("Product not found", details={"product_id": product_id})

        old_state, new_state = lifecycle_service.transition(product, state, label="product")
        if new_state == STATE_DELETED:
            for variant in product.variants:
                if variant.lifecycle_state != STATE_DELETED:
                    lifecycle_service.transition(variant, STATE_DELETED, label="variant")
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_CHANGE_LIFECYCLE,
            entity_type="product",
            entity_id=product.id,
            old_values={"lifecycle_state": old_state},
            new_values={"lifecycle_state": new_state},
        )
        return product

    return run_atomic(_op, description="change product state")


def set_variant_state(*, organization_id: int, user_id: int, variant_id: int, state: str) -> ProductVariant:
    lifecycle_service.validate_state(state)

    def _op() -> ProductVariant:
        require_user_in_org(user_id, organization_id)
        variant = _get_variant(organization_id, variant_id)

        old_state, new_state = lifecycle_service.transition(variant, state, label="variant")
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_CHANGE_LIFECYCLE,
            entity_type="product_variant",
            entity_id=variant.id,
            old_values={"lifecycle_state": old_state},
            new_values={"lifecycle_state": new_state},
        )
        return variant

    return run_atomic(_op, description="change variant state")
