from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Organization(db.Model):
    """
    Multi-tenant root: Every tenant is an Organization.

    All branches, users, catalog, inventory and sales rows carry
    organization_id. No data may cross organization boundaries.
    Organizations are soft-deleted (deleted_at), never hard-deleted.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True, index=True)
    owner_email = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Organization id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Branch(db.Model):
    """
    Sales location within an organization.

    At most one branch per organization has is_default=True. The flag is only
    flipped through branch_service, which locks the organization's branch rows
    and unsets the previous default in the same unit of work. The partial
    unique index rejects a second default at the database level.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "slug", name="uq_branches_org_slug"),
        db.Index("ix_branches_org_default", "organization_id", "is_default"),
        db.Index(
            "uq_branches_org_default",
            "organization_id",
            unique=True,
            postgresql_where=db.text("is_default"),
            sqlite_where=db.text("is_default"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(50), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship("Organization", backref=db.backref("branches", lazy=True))

    @property
    def is_usable(self) -> bool:
        return self.is_active and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r} organization_id={self.organization_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "slug": self.slug,
            "address": self.address,
            "phone": self.phone,
            "is_active": self.is_active,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
