# Overview: Per-organization, per-year transaction number allocation.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import TransactionSequence
from ..time_utils import current_year


def format_transaction_number(prefix: str, year: int, number: int, pad: int = 4) -> str:
    return f"{prefix}-{year}-{number:0{pad}d}"


def next_transaction_number(
    *,
    organization_id: int,
    year: int | None = None,
    prefix: str | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate the next transaction number for an organization/year.

    Must run inside the caller's unit of work (see concurrency.run_with_retry):
    the UPDATE keeps the sequence row locked until the sale commits, and a
    rolled-back sale rolls the increment back with it, so a failed sale
    never consumes a number.

    Format: "<PREFIX>-<YEAR>-<NNNN>", e.g. "TXN-2025-0001". Numbers past
    9999 simply widen.
    """
    if year is None:
        year = current_year()
    if prefix is None:
        prefix = current_app.config.get("TRANSACTION_NUMBER_PREFIX", "TXN")

    number = _allocate(organization_id, year)
    return format_transaction_number(prefix, year, number, pad)


def _allocate(organization_id: int, year: int) -> int:
    stmt = (
        update(TransactionSequence)
        .where(
            TransactionSequence.organization_id == organization_id,
            TransactionSequence.year == year,
        )
        .values(next_number=TransactionSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current_next(organization_id, year) - 1

    # First sale of the year for this organization.
    nested = db.session.begin_nested()
    try:
        db.session.add(TransactionSequence(organization_id=organization_id, year=year, next_number=2))
        nested.commit()
        return 1
    except IntegrityError:
        # Another unit inserted the row first; fall back to the increment.
        nested.rollback()

    result = db.session.execute(stmt)
    if not result.rowcount:
        raise RuntimeError(
            f"Transaction sequence for organization {organization_id}/{year} vanished"
        )
    return _current_next(organization_id, year) - 1


def _current_next(organization_id: int, year: int) -> int:
    return (
        db.session.query(TransactionSequence.next_number)
        .filter_by(organization_id=organization_id, year=year)
        .scalar()
    )
