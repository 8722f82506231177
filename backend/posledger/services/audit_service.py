# Overview: Append-only audit log writer.

from __future__ import annotations

from typing import Any, Optional

from ..extensions import db
from ..models import AuditLog
"""
Audit Log Invariants (authoritative)

- Append-only: no updates, no deletes.
- Entries are written inside the same DB transaction as the action they
  record, so a rolled-back action leaves no audit entry behind.
- No domain logic here.
"""


ACTION_CREATE_TRANSACTION = "create_transaction"
ACTION_CREATE_PRODUCT = "create_product"
ACTION_UPDATE_PRODUCT = "update_product"
ACTION_UPDATE_VARIANT = "update_variant"
ACTION_CHANGE_LIFECYCLE = "change_lifecycle_state"
ACTION_CREATE_BRANCH = "create_branch"
ACTION_SET_DEFAULT_BRANCH = "set_default_branch"
ACTION_UPDATE_BRANCH = "update_branch"
ACTION_DELETE_BRANCH = "delete_branch"
ACTION_CREATE_CATEGORY = "create_category"
ACTION_UPDATE_CATEGORY = "update_category"
ACTION_DELETE_CATEGORY = "delete_category"


def append_audit_log(
    *,
    organization_id: int,
    action: str,
    entity_type: str,
    entity_id: int | None,
    user_id: int | None = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        organization_id=organization_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=old_values,
        new_values=new_values,
    )
    db.session.add(entry)
    db.session.flush()  # assigns entry.id without committing
    return entry


def list_audit_logs(
    organization_id: int,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = db.session.query(AuditLog).filter_by(organization_id=organization_id)
    if entity_type is not None:
        query = query.filter_by(entity_type=entity_type)
    if entity_id is not None:
        query = query.filter_by(entity_id=entity_id)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
