# Overview: Flask API routes for the caller's own session.

from flask import Blueprint, request, jsonify, g

from ..services import session_service
from ..decorators import require_auth


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.get("/me")
@require_auth
def whoami_route():
    """Identity behind the bearer token."""
    return jsonify({
        "user": g.current_user.to_dict(),
        "organization_id": g.org_id,
        "permissions": sorted(g.identity.permissions),
    }), 200


@sessions_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the bearer token used for this request."""
    token = request.headers["Authorization"].split(" ", 1)[1].strip()
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out"}), 200
