# Overview: Inventory ledger primitives; the only writer of inventory quantities.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryRecord, StockMovement
from ..time_utils import utcnow
from .concurrency import lock_for_update
"""
Inventory Ledger Invariants (authoritative)

- lock_and_read() is followed, in the same unit of work, by at most one
  write_quantity() for that (branch, variant); the lock is released by the
  caller's commit or rollback.
- Quantities are never negative; a negative write is refused.
- Every quantity change is paired with exactly one StockMovement whose
  quantity_after == quantity_before + quantity_change.
- For a (branch, variant), consecutive movements chain: each row's
  quantity_before equals the previous row's quantity_after.
- Callers never set InventoryRecord.quantity directly.
"""


@dataclass
class LockedStock:
    """
    A (branch, variant) stock row held under lock for the current unit.

    record is None when no inventory row exists yet; quantity is then 0 and
    write_quantity() creates the row.
    """
    organization_id: int
    branch_id: int
    variant_id: int
    quantity: int
    record: Optional[InventoryRecord] = None


@dataclass(frozen=True)
class LedgerDiscrepancy:
    branch_id: int
    variant_id: int
    reason: str
    movement_id: int | None = None
    expected: int | None = None
    actual: int | None = None

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "variant_id": self.variant_id,
            "reason": self.reason,
            "movement_id": self.movement_id,
            "expected": self.expected,
            "actual": self.actual,
        }


def _select_locked(organization_id: int, branch_id: int, variant_id: int) -> InventoryRecord | None:
    query = db.session.query(InventoryRecord).filter_by(
        organization_id=organization_id,
        branch_id=branch_id,
        variant_id=variant_id,
    )
    return lock_for_update(query).populate_existing().first()


def _insert_record(organization_id: int, branch_id: int, variant_id: int, quantity: int = 0) -> InventoryRecord:
    """Insert a missing inventory row, tolerating a concurrent insert of the same pair."""
    nested = db.session.begin_nested()
    try:
        record = InventoryRecord(
            organization_id=organization_id,
            branch_id=branch_id,
            variant_id=variant_id,
            quantity=quantity,
            updated_at=utcnow(),
        )
        db.session.add(record)
        nested.commit()
        return record
    except IntegrityError:
        nested.rollback()

    record = _select_locked(organization_id, branch_id, variant_id)
    if record is None:
        raise RuntimeError(
            f"Inventory record for branch {branch_id} variant {variant_id} could not be created"
        )
    return record


def lock_and_read(
    organization_id: int,
    branch_id: int,
    variant_id: int,
    *,
    create_missing: bool = False,
) -> LockedStock:
    """
    Lock the inventory row for (branch, variant) and return its quantity.

    A missing row reads as 0. With create_missing=True the row is inserted
    (quantity 0) and locked right away; otherwise it is created lazily by
    write_quantity().
    """
    record = _select_locked(organization_id, branch_id, variant_id)
    if record is None and create_missing:
        record = _insert_record(organization_id, branch_id, variant_id)

    return LockedStock(
        organization_id=organization_id,
        branch_id=branch_id,
        variant_id=variant_id,
        quantity=record.quantity if record is not None else 0,
        record=record,
    )


def lock_many(organization_id: int, branch_id: int, variant_ids) -> dict[int, LockedStock]:
    """
    Lock several rows of one branch in ascending variant id order.

    Callers that touch more than one pair must go through here first so that
    every unit acquires row locks in the same order.
    """
    return {
        variant_id: lock_and_read(organization_id, branch_id, variant_id)
        for variant_id in sorted(set(variant_ids))
    }


def write_quantity(locked: LockedStock, new_quantity: int, *, counted: bool = False) -> LockedStock:
    if new_quantity < 0:
        raise ValueError(
            f"Refusing negative stock write for branch {locked.branch_id} "
            f"variant {locked.variant_id}: {new_quantity}"
        )

    record = locked.record
    if record is None:
        record = _insert_record(locked.organization_id, locked.branch_id, locked.variant_id)
        locked.record = record

    now = utcnow()
    record.quantity = new_quantity
    record.updated_at = now
    if counted:
        record.last_counted_at = now

    db.session.flush()
    locked.quantity = new_quantity
    return locked


def record_movement(
    *,
    organization_id: int,
    branch_id: int,
    variant_id: int,
    user_id: int | None,
    movement_type: str,
    quantity_before: int,
    quantity_after: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        organization_id=organization_id,
        branch_id=branch_id,
        variant_id=variant_id,
        user_id=user_id,
        movement_type=movement_type,
        quantity_change=quantity_after - quantity_before,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def apply_change(
    locked: LockedStock,
    new_quantity: int,
    *,
    user_id: int | None,
    movement_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    counted: bool = False,
) -> StockMovement:
    """Write the new quantity and append the matching movement."""
    before = locked.quantity
    write_quantity(locked, new_quantity, counted=counted)
    return record_movement(
        organization_id=locked.organization_id,
        branch_id=locked.branch_id,
        variant_id=locked.variant_id,
        user_id=user_id,
        movement_type=movement_type,
        quantity_before=before,
        quantity_after=new_quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )


def verify_ledger(
    organization_id: int,
    *,
    branch_id: int | None = None,
    variant_id: int | None = None,
) -> list[LedgerDiscrepancy]:
    """
    Replay movements per (branch, variant) from zero and compare with stock.

    Read-only. Returns an empty list when every chain is intact and every
    inventory record matches the last movement's quantity_after.
    """
    movements = db.session.query(StockMovement).filter_by(organization_id=organization_id)
    records = db.session.query(InventoryRecord).filter_by(organization_id=organization_id)
    if branch_id is not None:
        movements = movements.filter_by(branch_id=branch_id)
        records = records.filter_by(branch_id=branch_id)
    if variant_id is not None:
        movements = movements.filter_by(variant_id=variant_id)
        records = records.filter_by(variant_id=variant_id)

    movements = movements.order_by(
        StockMovement.branch_id,
        StockMovement.variant_id,
        StockMovement.created_at,
        StockMovement.id,
    ).all()

    discrepancies: list[LedgerDiscrepancy] = []
    replayed: dict[tuple[int, int], int] = {}

    for movement in movements:
        key = (movement.branch_id, movement.variant_id)
        running = replayed.get(key, 0)

        if movement.quantity_before != running:
            discrepancies.append(LedgerDiscrepancy(
                branch_id=movement.branch_id,
                variant_id=movement.variant_id,
                reason="broken_chain",
                movement_id=movement.id,
                expected=running,
                actual=movement.quantity_before,
            ))

        if movement.quantity_after != movement.quantity_before + movement.quantity_change:
            discrepancies.append(LedgerDiscrepancy(
                branch_id=movement.branch_id,
                variant_id=movement.variant_id,
                reason="inconsistent_movement",
                movement_id=movement.id,
                expected=movement.quantity_before + movement.quantity_change,
                actual=movement.quantity_after,
            ))

        replayed[key] = movement.quantity_after

    for record in records.all():
        key = (record.branch_id, record.variant_id)
        expected = replayed.get(key, 0)
        if record.quantity != expected:
            discrepancies.append(LedgerDiscrepancy(
                branch_id=record.branch_id,
                variant_id=record.variant_id,
                reason="quantity_mismatch",
                expected=expected,
                actual=record.quantity,
            ))

    return discrepancies
