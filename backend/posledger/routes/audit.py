# Overview: Flask API routes for reading the audit trail (owners only).

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import PosLedgerError
from ..services import audit_service
from ..decorators import require_auth, require_owner
from ..validation import optional_int, optional_str


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_owner
def list_audit_logs_route():
    """
    Newest entries first.

    Query params: entity_type, entity_id, limit (default 100, max 500).
    """
    try:
        args = request.args
        entries = audit_service.list_audit_logs(
            g.org_id,
            entity_type=optional_str(args, "entity_type", max_length=64),
            entity_id=optional_int(args, "entity_id", minimum=1),
            limit=optional_int(args, "limit", default=100, minimum=1, maximum=500),
        )
        return jsonify({"audit_logs": [entry.to_dict() for entry in entries]}), 200

    except PosLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify({"error": "Internal server error"}), 500
