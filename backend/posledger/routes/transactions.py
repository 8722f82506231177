# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/posledger/routes/transactions.py
"""Sale (transaction) API routes"""

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import PosLedgerError
from ..models.auth import PERM_VIEW_PROFITS
from ..services import sales_service
from ..decorators import require_auth
from ..validation import optional_int, parse_sale_request


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Complete a sale: decrement stock and record the transaction atomically.

    Available to: any member of the organization.
    Profit fields are only returned to owners or staff with can_view_profits.
    """
    try:
        data = request.get_json(silent=True) or {}
        payload = parse_sale_request(data)

        result = sales_service.process_sale(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            **payload,
        )

        include_profit = g.identity.has_permission(PERM_VIEW_PROFITS)
        return jsonify({"transaction": result.to_dict(include_profit=include_profit)}), 201

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    try:
        branch_id = optional_int(request.args, "branch_id", minimum=1)
        limit = optional_int(request.args, "limit", default=50, minimum=1, maximum=200)

        transactions = sales_service.list_transactions(
            g.org_id,
            branch_id=branch_id,
            limit=limit,
            include_profit=g.identity.has_permission(PERM_VIEW_PROFITS),
        )
        return jsonify({"transactions": transactions}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    """Receipt with items."""
    try:
        transaction = sales_service.get_transaction(
            g.org_id,
            transaction_id,
            include_profit=g.identity.has_permission(PERM_VIEW_PROFITS),
        )
        return jsonify({"transaction": transaction}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get transaction")
        return jsonify({"error": "Internal server error"}), 500
