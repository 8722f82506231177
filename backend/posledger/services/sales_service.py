"""
Sale Transaction Engine

One call to process_sale() is one unit of work:

    1. authorize user and branch (before any mutation)
    2. compute line amounts and aggregates
    3. allocate the transaction number (same unit, no count-then-insert)
    4. insert the Transaction
    5. per line, in order: resolve variant, lock-and-read stock, check,
       insert TransactionItem, decrement stock, append a "sale" movement
    6. append the create_transaction audit entry
    7. commit

Any failure rolls back every effect of the unit. Inventory rows of all
distinct variants are locked in ascending variant id order before step 5.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import InsufficientStockError, InvalidVariantError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Transaction, TransactionItem
from ..models.inventory import MOVEMENT_SALE, REFERENCE_TRANSACTION
from ..models.sales import PAYMENT_STATUS_COMPLETED
from ..validation import MAX_PRICE_CENTS, validate_notes, validate_payment_method
from . import audit_service
from .catalog_service import resolve_variant
from .concurrency import run_atomic
from .ledger_service import apply_change, lock_and_read, lock_many
from .sequence_service import next_transaction_number
from .tenant_service import require_branch_in_org, require_user_in_org


@dataclass(frozen=True)
class SaleLineInput:
    variant_id: int
    quantity: int
    unit_price: int
    unit_capital_cost: int


@dataclass(frozen=True)
class LineAmounts:
    line_total: int
    line_capital_cost: int
    line_profit: int


@dataclass(frozen=True)
class SaleTotals:
    lines: tuple[LineAmounts, ...]
    subtotal: int
    total_capital_cost: int
    gross_profit: int


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: int
    transaction_number: str
    subtotal: int
    total_capital_cost: int
    gross_profit: int

    def to_dict(self, include_profit: bool = True) -> dict:
        data = {
            "transaction_id": self.transaction_id,
            "transaction_number": self.transaction_number,
            "subtotal": self.subtotal,
        }
        if include_profit:
            data["total_capital_cost"] = self.total_capital_cost
            data["gross_profit"] = self.gross_profit
        return data


def _validate_items(items: list[SaleLineInput]) -> None:
    if not items:
        raise ValidationError("A sale needs at least one item", details={"field": "items"})

    for index, item in enumerate(items):
        for field in ("variant_id", "quantity", "unit_price", "unit_capital_cost"):
            value = getattr(item, field)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(
                    f"items[{index}].{field} must be an integer",
                    details={"index": index, "field": field},
                )
        if item.quantity <= 0:
            raise ValidationError(
                f"items[{index}].quantity must be positive",
                details={"index": index, "field": "quantity"},
            )
        if not 0 <= item.unit_price <= MAX_PRICE_CENTS:
            raise ValidationError(
                f"items[{index}].unit_price is out of range",
                details={"index": index, "field": "unit_price"},
            )
        if not 0 <= item.unit_capital_cost <= MAX_PRICE_CENTS:
            raise ValidationError(
                f"items[{index}].unit_capital_cost is out of range",
                details={"index": index, "field": "unit_capital_cost"},
            )


def compute_totals(items: list[SaleLineInput]) -> SaleTotals:
    """
    Line and aggregate amounts, in integer centavos.

    subtotal - total_capital_cost == gross_profit == sum(line_profit)
    """
    lines = []
    subtotal = 0
    total_capital_cost = 0
    for item in items:
        line_total = item.unit_price * item.quantity
        line_capital_cost = item.unit_capital_cost * item.quantity
        lines.append(LineAmounts(line_total, line_capital_cost, line_total - line_capital_cost))
        subtotal += line_total
        total_capital_cost += line_capital_cost

    return SaleTotals(
        lines=tuple(lines),
        subtotal=subtotal,
        total_capital_cost=total_capital_cost,
        gross_profit=subtotal - total_capital_cost,
    )


def process_sale(
    *,
    organization_id: int,
    branch_id: int,
    user_id: int,
    payment_method: str,
    items: list[SaleLineInput],
    customer_name: str | None = None,
    customer_notes: str | None = None,
) -> TransactionResult:
    """
    Record a completed sale and decrement stock atomically.

    Raises:
        ValidationError: malformed items or payment method
        UnauthorizedError: user is not an active member of the organization
        InvalidBranchError: branch missing, inactive or in another organization
        InvalidVariantError: a line's variant is missing, deleted or foreign
        InsufficientStockError: a line asks for more than the branch has
        TransactionFailedError: unexpected storage failure (nothing applied)
    """
    items = list(items)
    _validate_items(items)
    validate_payment_method(payment_method)
    customer_notes = validate_notes(customer_notes)

    totals = compute_totals(items)

    def _op() -> TransactionResult:
        require_user_in_org(user_id, organization_id)
        require_branch_in_org(branch_id, organization_id)

        transaction_number = next_transaction_number(organization_id=organization_id)

        txn = Transaction(
            organization_id=organization_id,
            branch_id=branch_id,
            user_id=user_id,
            transaction_number=transaction_number,
            subtotal=totals.subtotal,
            total_capital_cost=totals.total_capital_cost,
            gross_profit=totals.gross_profit,
            payment_method=payment_method,
            payment_status=PAYMENT_STATUS_COMPLETED,
            customer_name=customer_name,
            customer_notes=customer_notes,
        )
        db.session.add(txn)
        db.session.flush()

        lock_many(organization_id, branch_id, [item.variant_id for item in items])

        for item, amounts in zip(items, totals.lines):
            snapshot = resolve_variant(organization_id, item.variant_id)
            if snapshot is None:
                raise InvalidVariantError(
                    "Product variant not found",
                    details={"variant_id": item.variant_id},
                )

            locked = lock_and_read(organization_id, branch_id, item.variant_id)
            if locked.quantity < item.quantity:
                current_app.logger.warning(
                    "Sale rejected: org=%s branch=%s variant=%s available=%s requested=%s",
                    organization_id, branch_id, item.variant_id, locked.quantity, item.quantity,
                )
                raise InsufficientStockError(
                    product_name=snapshot.product_name,
                    variant_name=snapshot.variant_name,
                    available=locked.quantity,
                    requested=item.quantity,
                    variant_id=item.variant_id,
                )

            db.session.add(TransactionItem(
                organization_id=organization_id,
                transaction_id=txn.id,
                variant_id=item.variant_id,
                product_name=snapshot.product_name,
                variant_name=snapshot.variant_name,
                sku=snapshot.sku,
                unit_price=item.unit_price,
                unit_capital_cost=item.unit_capital_cost,
                quantity=item.quantity,
                line_total=amounts.line_total,
                line_capital_cost=amounts.line_capital_cost,
                line_profit=amounts.line_profit,
            ))

            apply_change(
                locked,
                locked.quantity - item.quantity,
                user_id=user_id,
                movement_type=MOVEMENT_SALE,
                reference_type=REFERENCE_TRANSACTION,
                reference_id=txn.id,
                notes=f"Sale: {transaction_number}",
            )

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_CREATE_TRANSACTION,
            entity_type="transaction",
            entity_id=txn.id,
            new_values={
                "transaction_number": transaction_number,
                "branch_id": branch_id,
                "item_count": len(items),
                "subtotal": totals.subtotal,
                "payment_method": payment_method,
            },
        )

        return TransactionResult(
            transaction_id=txn.id,
            transaction_number=transaction_number,
            subtotal=totals.subtotal,
            total_capital_cost=totals.total_capital_cost,
            gross_profit=totals.gross_profit,
        )

    result = run_atomic(_op, description="process sale")
    current_app.logger.info(
        "Sale completed: %s org=%s branch=%s items=%d subtotal=%s",
        result.transaction_number, organization_id, branch_id, len(items), result.subtotal,
    )
    return result


def get_transaction(organization_id: int, transaction_id: int, include_profit: bool = True) -> dict:
    """Receipt view of a transaction with its items."""
    txn = db.session.query(Transaction).filter_by(
        id=transaction_id,
        organization_id=organization_id,
    ).first()
    if txn is None:
        raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})

    return txn.to_dict(include_profit=include_profit, include_items=True)


def list_transactions(
    organization_id: int,
    *,
    branch_id: int | None = None,
    limit: int = 50,
    include_profit: bool = True,
) -> list[dict]:
    query = db.session.query(Transaction).filter_by(organization_id=organization_id)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    rows = query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()
    return [txn.to_dict(include_profit=include_profit) for txn in rows]
