# Overview: Bearer token issue/validation for the acting user and tenant.

"""
Session tokens carry the tenant context of the API.

- Tokens are 32 random bytes (64 hex chars), returned once in plaintext.
- Only the SHA-256 hash is stored.
- organization_id is captured at issue time and never changes.
- A token stops validating when it expires, is revoked, or its user or
  organization is deactivated.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow
from .tenant_service import IdentityContext, validate_org_active


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Tokens are high-entropy, so a fast hash is enough."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int, ttl_hours: int | None = None) -> tuple[SessionToken, str]:
    """
    Issue a token for the user. Returns (session_record, plaintext_token).

    Raises ValueError if the user or their organization is not active.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active or user.deleted_at is not None:
        raise ValueError("User not found or inactive")

    validate_org_active(user.organization_id)

    if ttl_hours is None:
        ttl_hours = current_app.config.get("SESSION_TTL_HOURS", 24)

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        organization_id=user.organization_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> IdentityContext | None:
    """Return the identity behind a token, or None if it must be rejected."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        revoked_at=None,
    ).first()

    if not session:
        return None

    if session.expires_at < utcnow():
        return None

    user = session.user
    if not user or not user.is_active or user.deleted_at is not None:
        return None

    if user.organization_id != session.organization_id:
        return None

    org = user.organization
    if not org or not org.is_active or org.deleted_at is not None:
        return None

    return IdentityContext.for_user(user)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        revoked_at=None,
    ).first()

    if not session:
        return False

    session.revoked_at = utcnow()
    db.session.commit()
    return True
