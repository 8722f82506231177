# Overview: Pytest coverage for bearer sessions and tenant membership checks.

from datetime import timedelta

import pytest

from posledger.errors import InvalidBranchError, UnauthorizedError
from posledger.models import SessionToken
from posledger.services import session_service, tenant_service
from posledger.time_utils import utcnow


class TestSessions:

    def test_token_resolves_to_identity(self, db_session, stockman_a, org_a):
        session, token = session_service.create_session(stockman_a.id)

        identity = session_service.validate_session(token)

        assert identity.user_id == stockman_a.id
        assert identity.organization_id == org_a.id
        assert identity.has_permission("can_manage_inventory")
        assert not identity.has_permission("can_view_profits")
        assert session.token_hash != token

    def test_owner_has_every_permission(self, db_session, owner_a):
        _, token = session_service.create_session(owner_a.id)

        identity = session_service.validate_session(token)

        assert identity.has_permission("can_view_profits")
        assert identity.has_permission("can_manage_inventory")

    def test_unknown_token(self, db_session):
        assert session_service.validate_session("not-a-token") is None

    def test_revoked_token(self, db_session, cashier_a):
        _, token = session_service.create_session(cashier_a.id)

        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_expired_token(self, db_session, cashier_a):
        session, token = session_service.create_session(cashier_a.id)
        record = db_session.get(SessionToken, session.id)
        record.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_user(self, db_session, cashier_a):
        _, token = session_service.create_session(cashier_a.id)
        cashier_a.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None
        with pytest.raises(ValueError):
            session_service.create_session(cashier_a.id)

    def test_deactivated_organization(self, db_session, org_a, cashier_a):
        _, token = session_service.create_session(cashier_a.id)
        org_a.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None


class TestTenantChecks:

    def test_user_in_org(self, db_session, org_a, cashier_a, owner_b):
        assert tenant_service.require_user_in_org(cashier_a.id, org_a.id).id == cashier_a.id

        with pytest.raises(UnauthorizedError):
            tenant_service.require_user_in_org(owner_b.id, org_a.id)

    def test_branch_in_org(self, db_session, org_a, branch_a, branch_b):
        assert tenant_service.require_branch_in_org(branch_a.id, org_a.id).id == branch_a.id

        with pytest.raises(InvalidBranchError):
            tenant_service.require_branch_in_org(branch_b.id, org_a.id)
        with pytest.raises(InvalidBranchError):
            tenant_service.require_branch_in_org(99999, org_a.id)

    def test_org_branches_skip_inactive(self, db_session, org_a, branch_a, branch_a2):
        branch_a2.is_active = False
        db_session.commit()

        assert [b.id for b in tenant_service.get_org_branches(org_a.id)] == [branch_a.id]
        assert len(tenant_service.get_org_branches(org_a.id, active_only=False)) == 2
