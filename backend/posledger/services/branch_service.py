# Overview: Branch administration; default-branch rule and soft deletion.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import BranchError, InvalidBranchError, ValidationError
from ..extensions import db
from ..models import Branch, Organization
from ..slug_utils import slugify, unique_slug
from ..time_utils import utcnow
from . import audit_service
from .concurrency import lock_for_update, run_atomic
from .tenant_service import get_org_branches, require_user_in_org


# Fields update_branch() accepts
BRANCH_EDITABLE_FIELDS = ("name", "address", "phone", "is_active", "is_default")


def _lock_branches(organization_id: int) -> list[Branch]:
    """
    Serialize branch administration for one organization.

    Locks the organization row first (an organization without branches has
    no branch row to lock), then every live branch row in id order.
    """
    lock_for_update(db.session.query(Organization).filter_by(id=organization_id)).first()
    query = (
        db.session.query(Branch)
        .filter(Branch.organization_id == organization_id, Branch.deleted_at.is_(None))
        .order_by(Branch.id)
    )
    return lock_for_update(query).populate_existing().all()


def _get_branch(organization_id: int, branch_id: int) -> Branch:
    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if branch is None or branch.organization_id != organization_id or branch.deleted_at is not None:
        raise InvalidBranchError("Branch not found", details={"branch_id": branch_id})
    return branch


def _clear_default(organization_id: int, keep_branch_id: int | None = None) -> None:
    stmt = (
        update(Branch)
        .where(Branch.organization_id == organization_id, Branch.is_default.is_(True))
        .values(is_default=False)
    )
    if keep_branch_id is not None:
        stmt = stmt.where(Branch.id != keep_branch_id)
    db.session.execute(stmt, execution_options={"synchronize_session": "fetch"})


def list_branches(organization_id: int, include_inactive: bool = False) -> list[Branch]:
    return get_org_branches(organization_id, active_only=not include_inactive)


def create_branch(
    *,
    organization_id: int,
    user_id: int,
    name: str,
    address: str | None = None,
    phone: str | None = None,
    is_default: bool = False,
) -> Branch:
    """
    Create a branch. The organization's first branch always becomes default;
    a later branch created with is_default=True takes the flag over.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})

    def _op() -> Branch:
        require_user_in_org(user_id, organization_id)

        make_default = is_default or not _lock_branches(organization_id)

        if make_default:
            _clear_default(organization_id)

        slug = unique_slug(
            slugify(name),
            lambda s: db.session.query(Branch.id).filter_by(organization_id=organization_id, slug=s).first() is not None,
        )
        branch = Branch(
            organization_id=organization_id,
            name=name,
            slug=slug,
            address=address,
            phone=phone,
            is_active=True,
            is_default=make_default,
        )
        db.session.add(branch)
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_CREATE_BRANCH,
            entity_type="branch",
            entity_id=branch.id,
            new_values={"name": name, "is_default": make_default},
        )
        return branch

    branch = run_atomic(_op, description="create branch")
    current_app.logger.info("Branch created: org=%s branch=%s default=%s", organization_id, branch.id, branch.is_default)
    return branch


def set_default_branch(*, organization_id: int, user_id: int, branch_id: int) -> Branch:
    def _op() -> Branch:
        require_user_in_org(user_id, organization_id)
        previous = next((b.id for b in _lock_branches(organization_id) if b.is_default), None)

        branch = _get_branch(organization_id, branch_id)
        if not branch.is_active:
            raise BranchError("An inactive branch cannot be the default", details={"branch_id": branch_id})

        _clear_default(organization_id, keep_branch_id=branch.id)
        branch.is_default = True
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_SET_DEFAULT_BRANCH,
            entity_type="branch",
            entity_id=branch.id,
            old_values={"default_branch_id": previous},
            new_values={"default_branch_id": branch.id},
        )
        return branch

    return run_atomic(_op, description="set default branch")


def delete_branch(*, organization_id: int, user_id: int, branch_id: int) -> Branch:
    """Soft-delete a branch. The default branch cannot be deleted."""
    def _op() -> Branch:
        require_user_in_org(user_id, organization_id)
        _lock_branches(organization_id)

        branch = _get_branch(organization_id, branch_id)
        if branch.is_default:
            raise BranchError("Cannot delete default branch", details={"branch_id": branch_id})

        branch.is_active = False
        branch.deleted_at = utcnow()
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_DELETE_BRANCH,
            entity_type="branch",
            entity_id=branch.id,
            old_values={"name": branch.name},
        )
        return branch

    branch = run_atomic(_op, description="delete branch")
    current_app.logger.info("Branch deleted: org=%s branch=%s", organization_id, branch_id)
    return branch


def update_branch(*, organization_id: int, user_id: int, branch_id: int, **changes) -> Branch:
    """
    Edit name, address, phone, is_active or is_default of a branch.

    is_default=True moves the flag here. The default branch can neither be
    deactivated nor un-flagged directly; another branch must take the flag
    first. The slug is kept when the name changes.
    """
    unknown = set(changes) - set(BRANCH_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise ValidationError("name is required", details={"field": "name"})

    def _op() -> Branch:
        require_user_in_org(user_id, organization_id)
        _lock_branches(organization_id)

        branch = _get_branch(organization_id, branch_id)
        will_be_active = changes.get("is_active", branch.is_active)
        will_be_default = changes.get("is_default", branch.is_default)

        if branch.is_default and not will_be_default:
            raise BranchError(
                "Make another branch the default first",
                details={"branch_id": branch_id},
            )
        if will_be_default and not will_be_active:
            raise BranchError(
                "The default branch cannot be inactive",
                details={"branch_id": branch_id},
            )

        old_values = {field: getattr(branch, field) for field in changes}
        if will_be_default and not branch.is_default:
            _clear_default(organization_id, keep_branch_id=branch.id)

        for field, value in changes.items():
            setattr(branch, field, value)
        db.session.flush()

        audit_service.append_audit_log(
            organization_id=organization_id,
            user_id=user_id,
            action=audit_service.ACTION_UPDATE_BRANCH,
            entity_type="branch",
            entity_id=branch.id,
            old_values=old_values,
            new_values={field: getattr(branch, field) for field in changes},
        )
        return branch

    branch = run_atomic(_op, description="update branch")
    current_app.logger.info(
        "Branch updated: org=%s branch=%s fields=%s",
        organization_id, branch_id, ",".join(sorted(changes)),
    )
    return branch
