# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/posledger/routes/inventory.py
"""Inventory API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import PosLedgerError, ValidationError
from ..models.auth import PERM_MANAGE_INVENTORY
from ..services import inventory_service
from ..decorators import require_auth, require_permission
from ..time_utils import parse_iso_datetime
from ..validation import optional_int, parse_adjustment_request, parse_count_request


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjust")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def adjust_stock_route():
    """
    Manual stock movement (stock_in, stock_out, adjustment).

    Requires: can_manage_inventory
    """
    try:
        data = request.get_json(silent=True) or {}
        payload = parse_adjustment_request(data)

        result = inventory_service.adjust_stock(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            **payload,
        )
        return jsonify({"adjustment": result.to_dict()}), 201

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/count")
@require_auth
@require_permission(PERM_MANAGE_INVENTORY)
def count_stock_route():
    """
    Physical count: set stock to the counted quantity.

    Requires: can_manage_inventory
    """
    try:
        data = request.get_json(silent=True) or {}
        payload = parse_count_request(data)

        result = inventory_service.count_stock(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            **payload,
        )
        return jsonify({"count": result.to_dict()}), 201

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record stock count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock")
@require_auth
def stock_levels_route():
    """Stock grouped by product; ?branch_id= narrows to one branch."""
    try:
        branch_id = optional_int(request.args, "branch_id", minimum=1)
        products = inventory_service.list_stock_levels(g.org_id, branch_id=branch_id)
        return jsonify({"products": products}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list stock levels")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
@require_auth
def stock_movements_route():
    """
    Movement history, newest first.

    Query params: branch_id, variant_id, movement_type, search,
    date_from, date_to (ISO-8601), page, page_size (default 25).
    A date-only date_to includes that whole day.
    """
    try:
        args = request.args
        try:
            date_from = parse_iso_datetime(args.get("date_from"))
            date_to = parse_iso_datetime(args.get("date_to"), end_of_day=True)
        except ValueError:
            raise ValidationError("date_from/date_to must be ISO-8601 datetimes")

        result = inventory_service.list_stock_movements(
            g.org_id,
            branch_id=optional_int(args, "branch_id", minimum=1),
            variant_id=optional_int(args, "variant_id", minimum=1),
            movement_type=args.get("movement_type") or None,
            search=args.get("search") or None,
            date_from=date_from,
            date_to=date_to,
            page=optional_int(args, "page", default=1, minimum=1),
            page_size=optional_int(args, "page_size", default=inventory_service.DEFAULT_PAGE_SIZE, minimum=1),
        )
        return jsonify(result), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
