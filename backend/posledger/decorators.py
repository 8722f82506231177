# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .models import User
from .models.auth import ROLE_OWNER
from .extensions import db
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'identity') and hasattr(g, 'org_id')


def require_auth(f):
    """
    Require a bearer token and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.identity: IdentityContext (user_id, organization_id, role, permissions)
    - g.org_id: The organization ID (tenant context)
    - g.current_user: The authenticated User object

    Returns 401 if the header is missing, or the token is invalid, expired,
    revoked, or belongs to a deactivated user or organization.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        identity = session_service.validate_session(token)

        if not identity:
            return jsonify({"error": "Invalid or expired token", "code": "unauthenticated"}), 401

        g.identity = identity
        g.org_id = identity.organization_id
        g.current_user = db.session.get(User, identity.user_id)

        return f(*args, **kwargs)

    return decorated_function


def _deny(reason: str, **extra):
    current_app.logger.warning(
        "Permission denied: user=%s org=%s path=%s reason=%s",
        g.identity.user_id, g.org_id, request.path, reason,
    )
    body = {"error": "Permission denied", "code": "unauthorized", "details": extra}
    return jsonify(body), 403


def require_permission(flag: str):
    """
    Require a permission flag (can_view_profits, can_manage_inventory, ...).

    Owners hold every flag.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401

            if not g.identity.has_permission(flag):
                return _deny("missing permission", required_permission=flag)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_owner(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401

        if g.identity.role != ROLE_OWNER:
            return _deny("owner role required", required_role="owner")

        return f(*args, **kwargs)

    return decorated_function
