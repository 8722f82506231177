from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


STATE_ACTIVE = "active"
STATE_INACTIVE = "inactive"
STATE_DELETED = "deleted"
LIFECYCLE_STATES = (STATE_ACTIVE, STATE_INACTIVE, STATE_DELETED)


class Category(db.Model):
    """Product grouping. Soft-deleted via deleted_at; products keep their category_id."""
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "slug", name="uq_categories_org_slug"),
        db.Index(
            "ix_categories_deleted_at",
            "deleted_at",
            postgresql_where=db.text("deleted_at IS NOT NULL"),
            sqlite_where=db.text("deleted_at IS NOT NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "display_order": self.display_order,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Product(db.Model):
    """
    Shared metadata of a sellable item. Stock and prices live on variants.

    LIFECYCLE: lifecycle_state replaces a bare deleted_at filter.
    Transitions go through catalog_service.set_product_state:
        active <-> inactive, active|inactive -> deleted (terminal)
    deleted_at is stamped when the product enters "deleted".
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "slug", name="uq_products_org_slug"),
        db.Index("ix_products_org_state", "organization_id", "lifecycle_state"),
        db.Index("ix_products_org_name", "organization_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    lifecycle_state = db.Column(db.String(16), nullable=False, default=STATE_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    category = db.relationship("Category")
    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        lazy=True,
        order_by="ProductVariant.id",
    )

    @property
    def is_active(self) -> bool:
        return self.lifecycle_state == STATE_ACTIVE

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} organization_id={self.organization_id}>"

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.organization_id,
            "category_id": self.category_id,
            "name": self.name,
            "slug": self.slug,
            "brand": self.brand,
            "description": self.description,
            "lifecycle_state": self.lifecycle_state,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ProductVariant(db.Model):
    """
    The unit of sale. SKU is unique per organization.

    selling_price and capital_cost are integer centavos (45000 = P450.00).
    Historical receipts snapshot these values on TransactionItem, so editing
    them never rewrites past sales.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "sku", name="uq_variants_org_sku"),
        db.Index("ix_variants_org_state", "organization_id", "lifecycle_state"),
        db.CheckConstraint("selling_price >= 0", name="ck_variants_selling_price"),
        db.CheckConstraint("capital_cost >= 0", name="ck_variants_capital_cost"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(100), nullable=False)

    selling_price = db.Column(db.Integer, nullable=False)
    capital_cost = db.Column(db.Integer, nullable=False)

    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    lifecycle_state = db.Column(db.String(16), nullable=False, default=STATE_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", back_populates="variants")

    @property
    def is_active(self) -> bool:
        return self.lifecycle_state == STATE_ACTIVE

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} organization_id={self.organization_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "selling_price": self.selling_price,
            "capital_cost": self.capital_cost,
            "low_stock_threshold": self.low_stock_threshold,
            "lifecycle_state": self.lifecycle_state,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
