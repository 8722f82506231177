# Overview: Pytest coverage for branch administration and the default-branch rule.

import pytest
from sqlalchemy.exc import IntegrityError

from posledger.errors import BranchError, InvalidBranchError, UnauthorizedError, ValidationError
from posledger.models import AuditLog, Branch, Organization
from posledger.services import branch_service


def defaults(session, org):
    session.expire_all()
    return [b.id for b in session.query(Branch).filter_by(organization_id=org.id, is_default=True).all()]


class TestCreateBranch:

    def test_first_branch_becomes_default(self, db_session, org_a, owner_a):
        first = branch_service.create_branch(organization_id=org_a.id, user_id=owner_a.id, name="Makati")
        second = branch_service.create_branch(organization_id=org_a.id, user_id=owner_a.id, name="Pasig")

        assert defaults(db_session, org_a) == [first.id]
        assert second.slug == "pasig"

    def test_new_default_takes_the_flag_over(self, db_session, org_a, owner_a, branch_a):
        branch = branch_service.create_branch(
            organization_id=org_a.id, user_id=owner_a.id, name="BGC", is_default=True,
        )

        assert defaults(db_session, org_a) == [branch.id]

    def test_duplicate_name_gets_unique_slug(self, db_session, org_a, owner_a, branch_a):
        branch = branch_service.create_branch(organization_id=org_a.id, user_id=owner_a.id, name="Makati")

        assert branch.slug != "makati"
        assert branch.slug.startswith("makati-")

    def test_blank_name(self, db_session, org_a, owner_a):
        with pytest.raises(ValidationError):
            branch_service.create_branch(organization_id=org_a.id, user_id=owner_a.id, name="  ")

    def test_user_of_other_org(self, db_session, org_a, owner_b):
        with pytest.raises(UnauthorizedError):
            branch_service.create_branch(organization_id=org_a.id, user_id=owner_b.id, name="Makati")


class TestDefaultBranch:

    def test_set_default(self, db_session, org_a, owner_a, branch_a, branch_a2):
        branch_service.set_default_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)

        assert defaults(db_session, org_a) == [branch_a2.id]

        audit = db_session.query(AuditLog).filter_by(action="set_default_branch").one()
        assert audit.old_values == {"default_branch_id": branch_a.id}

    def test_inactive_branch_cannot_be_default(self, db_session, org_a, owner_a, branch_a, branch_a2):
        branch_a2.is_active = False
        db_session.commit()

        with pytest.raises(BranchError):
            branch_service.set_default_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)

        assert defaults(db_session, org_a) == [branch_a.id]

    def test_other_org_branch(self, db_session, org_a, owner_a, branch_a, branch_b):
        with pytest.raises(InvalidBranchError):
            branch_service.set_default_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_b.id)


class TestDeleteBranch:

    def test_default_branch_cannot_be_deleted(self, db_session, org_a, owner_a, branch_a):
        with pytest.raises(BranchError) as exc:
            branch_service.delete_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a.id)

        assert exc.value.to_dict()["code"] == "invalid_state"

    def test_soft_delete(self, db_session, org_a, owner_a, branch_a, branch_a2):
        branch_service.delete_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)

        branch = db_session.get(Branch, branch_a2.id)
        assert branch.is_active is False
        assert branch.deleted_at is not None
        assert [b.id for b in branch_service.list_branches(org_a.id)] == [branch_a.id]

    def test_deleted_branch_is_gone_for_writes(self, db_session, org_a, owner_a, branch_a, branch_a2):
        branch_service.delete_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)

        with pytest.raises(InvalidBranchError):
            branch_service.delete_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)


def update(org, user, branch, **changes):
    return branch_service.update_branch(organization_id=org.id, user_id=user.id, branch_id=branch.id, **changes)


class TestUpdateBranch:

    def test_edit_details_keeps_slug(self, db_session, org_a, owner_a, branch_a):
        branch = update(org_a, owner_a, branch_a, name="Makati Ave", address="123 Ayala", phone="0917")

        assert (branch.name, branch.slug, branch.address, branch.phone) == ("Makati Ave", "makati", "123 Ayala", "0917")
        audit = db_session.query(AuditLog).filter_by(action="update_branch").one()
        assert audit.old_values == {"name": "Makati", "address": None, "phone": None}

    def test_deactivate_and_reactivate(self, db_session, org_a, owner_a, branch_a, branch_a2):
        update(org_a, owner_a, branch_a2, is_active=False)

        assert [b.id for b in branch_service.list_branches(org_a.id)] == [branch_a.id]
        assert {b.id for b in branch_service.list_branches(org_a.id, include_inactive=True)} == {branch_a.id, branch_a2.id}

        with pytest.raises(BranchError):
            branch_service.set_default_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)

        update(org_a, owner_a, branch_a2, is_active=True, is_default=True)
        assert defaults(db_session, org_a) == [branch_a2.id]

    def test_default_cannot_be_deactivated(self, db_session, org_a, owner_a, branch_a):
        with pytest.raises(BranchError) as exc:
            update(org_a, owner_a, branch_a, is_active=False)

        assert exc.value.to_dict()["code"] == "invalid_state"
        assert db_session.get(Branch, branch_a.id).is_active is True

    def test_default_flag_cannot_just_be_dropped(self, db_session, org_a, owner_a, branch_a, branch_a2):
        with pytest.raises(BranchError):
            update(org_a, owner_a, branch_a, is_default=False)

        assert defaults(db_session, org_a) == [branch_a.id]

    def test_taking_the_flag_moves_it(self, db_session, org_a, owner_a, branch_a, branch_a2):
        update(org_a, owner_a, branch_a2, is_default=True)

        assert defaults(db_session, org_a) == [branch_a2.id]

    def test_inactive_default_is_refused(self, db_session, org_a, owner_a, branch_a, branch_a2):
        with pytest.raises(BranchError):
            update(org_a, owner_a, branch_a2, is_default=True, is_active=False)

        assert defaults(db_session, org_a) == [branch_a.id]

    @pytest.mark.parametrize("changes", [{"slug": "x"}, {"organization_id": 2}, {"name": " "}])
    def test_bad_changes(self, db_session, org_a, owner_a, branch_a, changes):
        with pytest.raises(ValidationError):
            update(org_a, owner_a, branch_a, **changes)

    def test_other_org_branch(self, db_session, org_a, owner_a, branch_b):
        with pytest.raises(InvalidBranchError):
            update(org_a, owner_a, branch_b, name="Mine")


class TestSingleDefault:

    def test_database_rejects_second_default(self, db_session, org_a, branch_a):
        db_session.add(Branch(organization_id=org_a.id, name="Rogue", slug="rogue", is_default=True))

        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_defaults_in_other_orgs_do_not_clash(self, db_session, org_a, org_b, branch_a, branch_b):
        assert defaults(db_session, org_a) == [branch_a.id]
        assert defaults(db_session, org_b) == [branch_b.id]

    @pytest.mark.parametrize("operation", ["create", "set_default", "update", "delete"])
    def test_branch_rows_are_locked_first(self, db_session, monkeypatch, org_a, owner_a, branch_a, branch_a2, operation):
        locked = []
        real_lock = branch_service.lock_for_update

        def recording_lock(query):
            locked.append(query.column_descriptions[0]["entity"])
            return real_lock(query)

        monkeypatch.setattr(branch_service, "lock_for_update", recording_lock)

        if operation == "create":
            branch_service.create_branch(organization_id=org_a.id, user_id=owner_a.id, name="BGC", is_default=True)
        elif operation == "set_default":
            branch_service.set_default_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)
        elif operation == "update":
            update(org_a, owner_a, branch_a2, is_default=True)
        else:
            branch_service.delete_branch(organization_id=org_a.id, user_id=owner_a.id, branch_id=branch_a2.id)

        assert locked == [Organization, Branch]
        assert len(defaults(db_session, org_a)) == 1
