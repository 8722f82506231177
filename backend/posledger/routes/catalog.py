# Overview: Flask API routes for the product catalog.

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import PosLedgerError
from ..models.auth import PERM_MANAGE_INVENTORY, PERM_VIEW_PROFITS
from ..services import catalog_service
from ..decorators import require_auth, require_permission
from ..validation import (
    optional_int,
    optional_str,
    parse_category_request,
    parse_category_update,
    parse_product_request,
    parse_product_update,
    parse_state_request,
    parse_variant_update,
    require_int,
)


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/variants")
@require_auth
def sellable_variants_route():
    """POS catalog for a branch: ?branch_id= is required."""
    try:
        branch_id = require_int(request.args, "branch_id", minimum=1)
        variants = catalog_service.list_sellable_variants(g.org_id, branch_id)

        if not g.identity.has_permission(PERM_VIEW_PROFITS):
            for variant in variants:
                variant.pop("capital_cost", None)

        return jsonify({"variants": variants}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list catalog variants")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def create_product_route():
    """
    Create a product with variants; initial stock is seeded in every
    active branch.

    Requires: can_manage_inventory
    """
    try:
        data = request.get_json(silent=True) or {}
        payload = parse_product_request(data)

        product = catalog_service.create_product(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            **payload,
        )
        return jsonify({"product": product.to_dict(include_variants=True)}), 201

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/products/<int:product_id>")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def update_product_route(product_id: int):
    """
    Edit product fields and/or add variants.

    Body: any subset of name, brand, description, category_id, add_variants.
    New variants are seeded in every active branch with their initial_stock.
    """
    try:
        data = request.get_json(silent=True) or {}
        changes = parse_product_update(data)

        product = catalog_service.update_product(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            product_id=product_id,
            **changes,
        )
        body = product.to_dict(include_variants=True)
        if not g.identity.has_permission(PERM_VIEW_PROFITS):
            for variant in body["variants"]:
                variant.pop("capital_cost", None)
        return jsonify({"product": body}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/variants/<int:variant_id>")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def update_variant_route(variant_id: int):
    """
    Edit name, prices or low-stock threshold. SKU is immutable.

    Past receipts keep the values they were sold with.
    """
    try:
        data = request.get_json(silent=True) or {}
        changes = parse_variant_update(data)

        variant = catalog_service.update_variant(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            variant_id=variant_id,
            **changes,
        )
        body = variant.to_dict()
        if not g.identity.has_permission(PERM_VIEW_PROFITS):
            body.pop("capital_cost", None)
        return jsonify({"variant": body}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update variant")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products/<int:product_id>/state")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def set_product_state_route(product_id: int):
    """Body: {"lifecycle_state": "active" | "inactive" | "deleted"}"""
    try:
        state = parse_state_request(request.get_json(silent=True) or {})
        product = catalog_service.set_product_state(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            product_id=product_id,
            state=state,
        )
        return jsonify({"product": product.to_dict()}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change product state")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/variants/<int:variant_id>/state")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def set_variant_state_route(variant_id: int):
    try:
        state = parse_state_request(request.get_json(silent=True) or {})
        variant = catalog_service.set_variant_state(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            variant_id=variant_id,
            state=state,
        )
        body = variant.to_dict()
        if not g.identity.has_permission(PERM_VIEW_PROFITS):
            body.pop("capital_cost", None)
        return jsonify({"variant": body}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change variant state")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# Categories
# =============================================================================

@catalog_bp.get("/categories")
@require_auth
def list_categories_route():
    """Query params: search, page, page_size (default 25)."""
    try:
        args = request.args
        result = catalog_service.list_categories(
            g.org_id,
            search=optional_str(args, "search"),
            page=optional_int(args, "page", default=1, minimum=1),
            page_size=optional_int(args, "page_size", default=catalog_service.DEFAULT_PAGE_SIZE, minimum=1),
        )
        return jsonify(result), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/categories")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def create_category_route():
    try:
        data = request.get_json(silent=True) or {}
        payload = parse_category_request(data)

        category = catalog_service.create_category(
            g.org_id,
            payload["name"],
            payload["description"],
            user_id=g.identity.user_id,
            display_order=payload["display_order"],
        )
        return jsonify({"category": category.to_dict()}), 201

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/categories/<int:category_id>")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def update_category_route(category_id: int):
    try:
        data = request.get_json(silent=True) or {}
        changes = parse_category_update(data)

        category = catalog_service.update_category(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            category_id=category_id,
            **changes,
        )
        return jsonify({"category": category.to_dict()}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def delete_category_route(category_id: int):
    """Soft delete; products keep their category_id."""
    try:
        category = catalog_service.delete_category(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            category_id=category_id,
        )
        return jsonify({"category": category.to_dict()}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
