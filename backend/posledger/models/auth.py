from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_OWNER = "owner"
ROLE_STAFF = "staff"
VALID_ROLES = {ROLE_OWNER, ROLE_STAFF}

# Permission flag names, as carried in the identity context
PERM_VIEW_PROFITS = "can_view_profits"
PERM_MANAGE_INVENTORY = "can_manage_inventory"
PERM_VIEW_REPORTS = "can_view_reports"
PERMISSION_FLAGS = (PERM_VIEW_PROFITS, PERM_MANAGE_INVENTORY, PERM_VIEW_REPORTS)


class User(db.Model):
    """
    Shop owner or staff account.

    MULTI-TENANT: Users belong to exactly one organization. Every stock
    movement, transaction and audit entry is attributed to a user.

    Owners implicitly hold every permission flag; staff hold only the flags
    set on their row.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "email", name="uq_users_org_email"),
        db.Index("ix_users_org_role", "organization_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_STAFF)

    can_view_profits = db.Column(db.Boolean, nullable=False, default=False)
    can_manage_inventory = db.Column(db.Boolean, nullable=False, default=False)
    can_view_reports = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship("Organization", backref=db.backref("users", lazy=True))

    @property
    def is_owner(self) -> bool:
        return self.role == ROLE_OWNER

    def permissions(self) -> set[str]:
        if self.is_owner:
            return set(PERMISSION_FLAGS)
        return {flag for flag in PERMISSION_FLAGS if getattr(self, flag)}

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role!r} organization_id={self.organization_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "permissions": sorted(self.permissions()),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Bearer token identifying an acting user and tenant.

    Tokens are stored hashed (SHA-256); organization_id is captured at
    creation and never changes for the token's lifetime.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_revoked", "user_id", "revoked_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "revoked_at": to_utc_z(self.revoked_at),
        }
