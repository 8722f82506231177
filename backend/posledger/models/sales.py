from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


PAYMENT_CASH = "cash"
PAYMENT_GCASH = "gcash"
PAYMENT_CARD = "card"
PAYMENT_BANK_TRANSFER = "bank_transfer"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_GCASH, PAYMENT_CARD, PAYMENT_BANK_TRANSFER)

PAYMENT_STATUS_COMPLETED = "completed"


class Transaction(db.Model):
    """
    A completed sale. Immutable once committed.

    Aggregates are derived from the items at creation time:
        subtotal           = sum(item.line_total)
        total_capital_cost = sum(item.line_capital_cost)
        gross_profit       = subtotal - total_capital_cost = sum(item.line_profit)

    transaction_number is "<PREFIX>-<YEAR>-<NNNN>", allocated from
    TransactionSequence in the same unit of work as the insert.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "transaction_number", name="uq_transactions_org_number"),
        db.Index("ix_transactions_org_created", "organization_id", "created_at"),
        db.Index("ix_transactions_branch_created", "branch_id", "created_at"),
        db.CheckConstraint("subtotal >= 0", name="ck_transactions_subtotal"),
        db.CheckConstraint("total_capital_cost >= 0", name="ck_transactions_capital_cost"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    transaction_number = db.Column(db.String(50), nullable=False)

    subtotal = db.Column(db.Integer, nullable=False, default=0)
    total_capital_cost = db.Column(db.Integer, nullable=False, default=0)
    gross_profit = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(32), nullable=False, default=PAYMENT_STATUS_COMPLETED)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )
    branch = db.relationship("Branch")
    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} number={self.transaction_number!r}>"

    def to_dict(self, include_profit: bool = True, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "transaction_number": self.transaction_number,
            "subtotal": self.subtotal,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "customer_name": self.customer_name,
            "customer_notes": self.customer_notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_profit:
            data["total_capital_cost"] = self.total_capital_cost
            data["gross_profit"] = self.gross_profit
        if include_items:
            data["items"] = [item.to_dict(include_profit=include_profit) for item in self.items]
        return data


class TransactionItem(db.Model):
    """Line of a Transaction with a catalog snapshot taken at sale time."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity"),
        db.CheckConstraint("unit_price >= 0", name="ck_transaction_items_unit_price"),
        db.CheckConstraint("unit_capital_cost >= 0", name="ck_transaction_items_unit_cost"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    variant_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(100), nullable=False)

    unit_price = db.Column(db.Integer, nullable=False)
    unit_capital_cost = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    line_total = db.Column(db.Integer, nullable=False)
    line_capital_cost = db.Column(db.Integer, nullable=False)
    line_profit = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    transaction = db.relationship("Transaction", back_populates="items")

    def to_dict(self, include_profit: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "variant_id": self.variant_id,
            "product_name": self.product_name,
            "variant_name": self.variant_name,
            "sku": self.sku,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "line_total": self.line_total,
        }
        if include_profit:
            data["unit_capital_cost"] = self.unit_capital_cost
            data["line_capital_cost"] = self.line_capital_cost
            data["line_profit"] = self.line_profit
        return data


class TransactionSequence(db.Model):
    """
    Atomic per-organization, per-year transaction number counter.

    Incremented with UPDATE ... SET next_number = next_number + 1 inside the
    sale's unit of work, so the row stays locked until the sale commits.
    """
    __tablename__ = "transaction_sequences"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "year", name="uq_transaction_sequences_org_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
