"""
Multi-Tenant Service: identity context and membership checks

Every request is scoped to an organization. IDs that arrive from client
input (branch, user, variant) must be validated against the acting
organization before they are used, and cross-tenant references are
reported as "not found" so existence in another tenant is never revealed.

USAGE:
    from posledger.services.tenant_service import require_branch_in_org

    branch = require_branch_in_org(branch_id, g.org_id)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import InvalidBranchError, UnauthorizedError
from ..extensions import db
from ..models import Branch, Organization, User


@dataclass(frozen=True)
class IdentityContext:
    """The acting user and tenant, as resolved by the request layer."""
    user_id: int
    organization_id: int
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, flag: str) -> bool:
        return flag in self.permissions

    @classmethod
    def for_user(cls, user: User) -> "IdentityContext":
        return cls(
            user_id=user.id,
            organization_id=user.organization_id,
            role=user.role,
            permissions=frozenset(user.permissions()),
        )


def validate_org_active(org_id: int) -> Organization:
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org or org.deleted_at is not None:
        raise UnauthorizedError("Organization not found")

    if not org.is_active:
        raise UnauthorizedError("Organization is not active")

    return org


def require_user_in_org(user_id: int, org_id: int) -> User:
    """
    Confirm the acting user is an active member of the organization.

    Raises UnauthorizedError otherwise.
    """
    user = db.session.query(User).filter_by(id=user_id).first()

    if not user or user.organization_id != org_id:
        _log_cross_tenant_attempt("user", user_id, org_id)
        raise UnauthorizedError("User is not a member of this organization")

    if not user.is_active or user.deleted_at is not None:
        raise UnauthorizedError("User account is not active")

    return user


def require_branch_in_org(branch_id: int, org_id: int) -> Branch:
    """
    Validate that a branch belongs to the organization and can trade.

    Raises InvalidBranchError if the branch doesn't exist, belongs to a
    different org, is inactive or deleted.
    """
    branch = db.session.query(Branch).filter_by(id=branch_id).first()

    if not branch:
        raise InvalidBranchError("Branch not found", details={"branch_id": branch_id})

    if branch.organization_id != org_id:
        _log_cross_tenant_attempt("branch", branch_id, org_id)
        raise InvalidBranchError("Branch not found", details={"branch_id": branch_id})

    if not branch.is_usable:
        raise InvalidBranchError("Branch is not active", details={"branch_id": branch_id})

    return branch


def get_org_branches(org_id: int, active_only: bool = True) -> list[Branch]:
    query = db.session.query(Branch).filter(
        Branch.organization_id == org_id,
        Branch.deleted_at.is_(None),
    )
    if active_only:
        query = query.filter(Branch.is_active.is_(True))
    return query.order_by(Branch.is_default.desc(), Branch.name).all()


def _log_cross_tenant_attempt(entity: str, entity_id: int, org_id: int) -> None:
    current_app.logger.warning(
        "Cross-tenant %s reference denied: %s %s is not in organization %s",
        entity, entity, entity_id, org_id,
    )
