from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


MOVEMENT_STOCK_IN = "stock_in"
MOVEMENT_STOCK_OUT = "stock_out"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_SALE = "sale"
MOVEMENT_INITIAL_STOCK = "initial_stock"
MOVEMENT_TYPES = (
    MOVEMENT_STOCK_IN,
    MOVEMENT_STOCK_OUT,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_SALE,
    MOVEMENT_INITIAL_STOCK,
)

REFERENCE_TRANSACTION = "transaction"
REFERENCE_MANUAL = "manual"
REFERENCE_PRODUCT = "product"


class InventoryRecord(db.Model):
    """
    Current stock for one (organization, branch, variant).

    This is the only row in the system mutated concurrently. It is written
    exclusively by inventory_service under a row lock (see
    inventory_service.lock_and_read); quantity never goes below zero.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "variant_id", name="uq_inventory_branch_variant"),
        db.Index("ix_inventory_org_branch", "organization_id", "branch_id"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    last_counted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    variant = db.relationship("ProductVariant")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord branch_id={self.branch_id} "
            f"variant_id={self.variant_id} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "last_counted_at": to_utc_z(self.last_counted_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Immutable audit row for one inventory-affecting event.

    quantity_after == quantity_before + quantity_change, and for a given
    (branch, variant) each row's quantity_before equals the previous row's
    quantity_after. inventory_service.verify_ledger checks both.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_branch_variant_created", "branch_id", "variant_id", "created_at"),
        db.Index("ix_movements_org_created", "organization_id", "created_at"),
        db.Index("ix_movements_reference", "reference_type", "reference_id"),
        db.CheckConstraint("quantity_before >= 0", name="ck_movements_before_non_negative"),
        db.CheckConstraint("quantity_after >= 0", name="ck_movements_after_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    branch = db.relationship("Branch")
    variant = db.relationship("ProductVariant")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "variant_id": self.variant_id,
            "user_id": self.user_id,
            "movement_type": self.movement_type,
            "quantity_change": self.quantity_change,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
