# Overview: Flask API routes for branch management (owners only).

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import PosLedgerError
from ..services import branch_service
from ..decorators import require_auth, require_owner
from ..validation import parse_branch_request, parse_branch_update


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
def list_branches_route():
    """?include_inactive=true also lists deactivated (not deleted) branches."""
    try:
        include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true")
        branches = branch_service.list_branches(g.org_id, include_inactive=include_inactive)
        return jsonify({"branches": [b.to_dict() for b in branches]}), 200
    except Exception:
        current_app.logger.exception("Failed to list branches")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.post("")
@require_auth
@require_owner
def create_branch_route():
    try:
        data = request.get_json(silent=True) or {}
        payload = parse_branch_request(data)

        branch = branch_service.create_branch(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            **payload,
        )
        return jsonify({"branch": branch.to_dict()}), 201

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create branch")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.post("/<int:branch_id>/default")
@require_auth
@require_owner
def set_default_branch_route(branch_id: int):
    try:
        branch = branch_service.set_default_branch(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            branch_id=branch_id,
        )
        return jsonify({"branch": branch.to_dict()}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to set default branch")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.delete("/<int:branch_id>")
@require_auth
@require_owner
def delete_branch_route(branch_id: int):
    try:
        branch = branch_service.delete_branch(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            branch_id=branch_id,
        )
        return jsonify({"branch": branch.to_dict()}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete branch")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.patch("/<int:branch_id>")
@require_auth
@require_owner
def update_branch_route(branch_id: int):
    """
    Edit a branch.

    Body: any subset of name, address, phone, is_active, is_default.
    """
    try:
        data = request.get_json(silent=True) or {}
        changes = parse_branch_update(data)

        branch = branch_service.update_branch(
            organization_id=g.org_id,
            user_id=g.identity.user_id,
            branch_id=branch_id,
            **changes,
        )
        return jsonify({"branch": branch.to_dict()}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update branch")
        return jsonify({"error": "Internal server error"}), 500
