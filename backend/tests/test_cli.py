# Overview: Pytest coverage for the Flask CLI maintenance commands.

from posledger.models import InventoryRecord, Organization, User


class TestLedgerVerify:

    def test_consistent(self, app, db_session, org_a, variant_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "verify", "--org-id", str(org_a.id)])

        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_discrepancy_exits_nonzero(self, app, db_session, org_a, branch_a, variant_a):
        record = db_session.query(InventoryRecord).filter_by(variant_id=variant_a.id).one()
        record.quantity = 3
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify", "--org-id", str(org_a.id)])

        assert result.exit_code == 1
        assert "quantity_mismatch" in result.output


class TestBootstrapCommands:

    def test_create_org_and_user(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["orgs", "create", "--name", "Vape Shop Manila"])
        assert result.exit_code == 0

        db_session.expire_all()
        org = db_session.query(Organization).filter_by(slug="vape-shop-manila").one()

        result = runner.invoke(args=[
            "users", "create", "--org-id", str(org.id), "--name", "Ana Cruz", "--can-manage-inventory",
        ])
        assert result.exit_code == 0

        db_session.expire_all()
        user = db_session.query(User).filter_by(organization_id=org.id).one()
        assert user.can_manage_inventory is True
        assert user.permissions() == {"can_manage_inventory"}

    def test_issue_token_for_inactive_user_fails(self, app, db_session, cashier_a):
        cashier_a.is_active = False
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["users", "issue-token", "--user-id", str(cashier_a.id)])

        assert result.exit_code == 1
        assert "FAIL" in result.output
