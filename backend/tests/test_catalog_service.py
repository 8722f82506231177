# Overview: Pytest coverage for the catalog store and lifecycle transitions.

import pytest

from posledger.errors import ConflictError, InvalidVariantError, LifecycleError, NotFoundError, ValidationError
from posledger.models import AuditLog, Category, InventoryRecord, Product, ProductVariant, StockMovement, TransactionItem
from posledger.services import catalog_service, lifecycle_service, sales_service
from posledger.services.catalog_service import VariantInput
from posledger.services.ledger_service import verify_ledger
from posledger.services.sales_service import SaleLineInput


def new_product(org, user, *variants, name="Disposable Bar 5000", **kwargs):
    return catalog_service.create_product(
        organization_id=org.id,
        user_id=user.id,
        name=name,
        variants=list(variants) or [
            VariantInput(name="Grape", sku="DB5K-GRP", selling_price=30000, capital_cost=17500, initial_stock=12),
        ],
        **kwargs,
    )


class TestCreateProduct:

    def test_seeds_every_active_branch(self, db_session, org_a, branch_a, branch_a2, owner_a):
        product = new_product(
            org_a, owner_a,
            VariantInput(name="Grape", sku="DB5K-GRP", selling_price=30000, capital_cost=17500, initial_stock=12),
            VariantInput(name="Ice", sku="DB5K-ICE", selling_price=30000, capital_cost=17500),
        )

        variants = db_session.query(ProductVariant).filter_by(product_id=product.id).order_by(ProductVariant.sku).all()
        assert [v.sku for v in variants] == ["DB5K-GRP", "DB5K-ICE"]

        records = db_session.query(InventoryRecord).filter(
            InventoryRecord.variant_id.in_([v.id for v in variants])
        ).all()
        assert len(records) == 4
        assert sorted(r.quantity for r in records) == [0, 0, 12, 12]

        movements = db_session.query(StockMovement).filter_by(movement_type="initial_stock", reference_id=product.id).all()
        assert len(movements) == 2
        assert all(m.quantity_change == 12 for m in movements)
        assert verify_ledger(org_a.id) == []

        audit = db_session.query(AuditLog).filter_by(action="create_product").one()
        assert audit.entity_id == product.id

    def test_slug_and_state(self, db_session, org_a, branch_a, owner_a):
        product = new_product(org_a, owner_a, name="Pod Kit Ñandú", is_active=False)

        assert product.slug == "pod-kit-nandu"
        assert product.lifecycle_state == "inactive"

    def test_sku_taken_in_same_org(self, db_session, org_a, branch_a, owner_a, variant_a):
        with pytest.raises(ConflictError):
            new_product(org_a, owner_a, VariantInput(name="Blue", sku="PKX1-BLK", selling_price=1, capital_cost=1))

        assert db_session.query(Product).filter_by(organization_id=org_a.id).count() == 1

    def test_same_sku_allowed_in_other_org(self, db_session, org_b, branch_b, owner_b, variant_a):
        product = new_product(org_b, owner_b, VariantInput(name="Black", sku="PKX1-BLK", selling_price=1, capital_cost=1))

        assert product.organization_id == org_b.id

    def test_duplicate_sku_within_request(self, db_session, org_a, branch_a, owner_a):
        with pytest.raises(ConflictError):
            new_product(
                org_a, owner_a,
                VariantInput(name="A", sku="DUP-1", selling_price=1, capital_cost=1),
                VariantInput(name="B", sku="dup-1", selling_price=1, capital_cost=1),
            )

    @pytest.mark.parametrize("variant", [
        VariantInput(name="Bad", sku="HAS SPACE", selling_price=1, capital_cost=1),
        VariantInput(name="Bad", sku="", selling_price=1, capital_cost=1),
        VariantInput(name="", sku="OK-1", selling_price=1, capital_cost=1),
        VariantInput(name="Bad", sku="OK-1", selling_price=-1, capital_cost=1),
        VariantInput(name="Bad", sku="OK-1", selling_price=1, capital_cost=1, initial_stock=-5),
    ])
    def test_invalid_variant_input(self, db_session, org_a, branch_a, owner_a, variant):
        with pytest.raises(ValidationError):
            new_product(org_a, owner_a, variant)

        assert db_session.query(Product).count() == 0

    def test_unknown_category(self, db_session, org_a, branch_a, owner_a):
        with pytest.raises(ValidationError):
            new_product(org_a, owner_a, category_id=9999)

    def test_category_of_same_org(self, db_session, org_a, branch_a, owner_a):
        category = catalog_service.create_category(org_a.id, "Disposables")

        product = new_product(org_a, owner_a, category_id=category.id)

        assert product.category_id == category.id


class TestResolveVariant:

    def test_snapshot(self, db_session, org_a, variant_a):
        snapshot = catalog_service.resolve_variant(org_a.id, variant_a.id)

        assert snapshot.product_name == "Pod Kit X1"
        assert snapshot.variant_name == "Black"
        assert snapshot.sku == "PKX1-BLK"
        assert snapshot.is_sellable is True

    def test_other_tenant_is_invisible(self, db_session, org_a, variant_b):
        assert catalog_service.resolve_variant(org_a.id, variant_b.id) is None

    def test_inactive_resolves_but_is_not_listed(self, db_session, org_a, branch_a, owner_a, variant_a, variant_a2):
        catalog_service.set_variant_state(
            organization_id=org_a.id, user_id=owner_a.id, variant_id=variant_a.id, state="inactive",
        )

        assert catalog_service.resolve_variant(org_a.id, variant_a.id).is_sellable is False

        listed = catalog_service.list_sellable_variants(org_a.id, branch_a.id)
        assert [v["sku"] for v in listed] == ["SNJ-MNG-35"]
        assert listed[0]["quantity"] == 5


class TestLifecycle:

    @pytest.mark.parametrize("from_state, to_state, allowed", [
        ("active", "inactive", True),
        ("inactive", "active", True),
        ("active", "deleted", True),
        ("inactive", "deleted", True),
        ("deleted", "active", False),
        ("deleted", "inactive", False),
        ("active", "active", False),
    ])
    def test_transition_table(self, from_state, to_state, allowed):
        assert lifecycle_service.can_transition(from_state, to_state) is allowed

    def test_unknown_state(self):
        with pytest.raises(LifecycleError):
            lifecycle_service.can_transition("active", "archived")

    def test_deleting_product_deletes_variants(self, db_session, org_a, owner_a, variant_a):
        product = catalog_service.set_product_state(
            organization_id=org_a.id, user_id=owner_a.id, product_id=variant_a.product_id, state="deleted",
        )

        assert product.deleted_at is not None
        variant = db_session.get(ProductVariant, variant_a.id)
        assert variant.lifecycle_state == "deleted"
        assert catalog_service.resolve_variant(org_a.id, variant_a.id) is None

    def test_deleted_is_terminal(self, db_session, org_a, owner_a, variant_a):
        catalog_service.set_variant_state(
            organization_id=org_a.id, user_id=owner_a.id, variant_id=variant_a.id, state="deleted",
        )

        with pytest.raises(LifecycleError):
            catalog_service.set_variant_state(
                organization_id=org_a.id, user_id=owner_a.id, variant_id=variant_a.id, state="active",
            )

    def test_state_change_is_audited(self, db_session, org_a, owner_a, variant_a):
        catalog_service.set_variant_state(
            organization_id=org_a.id, user_id=owner_a.id, variant_id=variant_a.id, state="inactive",
        )

        audit = db_session.query(AuditLog).filter_by(action="change_lifecycle_state").one()
        assert audit.old_values == {"lifecycle_state": "active"}
        assert audit.new_values == {"lifecycle_state": "inactive"}


class TestUpdateVariant:

    def test_receipts_keep_snapshot(self, db_session, org_a, branch_a, owner_a, cashier_a, variant_a):
        sale = sales_service.process_sale(
            organization_id=org_a.id,
            branch_id=branch_a.id,
            user_id=cashier_a.id,
            payment_method="gcash",
            items=[SaleLineInput(variant_id=variant_a.id, quantity=1, unit_price=45000, unit_capital_cost=30000)],
        )

        catalog_service.update_variant(
            organization_id=org_a.id, user_id=owner_a.id, variant_id=variant_a.id,
            name="Jet Black", selling_price=50000,
        )

        item = db_session.query(TransactionItem).filter_by(transaction_id=sale.transaction_id).one()
        assert item.variant_name == "Black"
        assert item.unit_price == 45000

        variant = db_session.get(ProductVariant, variant_a.id)
        assert variant.name == "Jet Black"
        assert variant.selling_price == 50000

        audit = db_session.query(AuditLog).filter_by(action="update_variant").one()
        assert audit.old_values == {"name": "Black", "selling_price": 45000}

    def test_sku_is_not_editable(self, db_session, org_a, owner_a, variant_a):
        with pytest.raises(ValidationError):
            catalog_service.update_variant(
                organization_id=org_a.id, user_id=owner_a.id, variant_id=variant_a.id, sku="NEW-SKU",
            )

    def test_other_tenant_variant(self, db_session, org_a, owner_a, variant_b):
        with pytest.raises(InvalidVariantError):
            catalog_service.update_variant(
                organization_id=org_a.id, user_id=owner_a.id, variant_id=variant_b.id, selling_price=1,
            )


def new_category(org, user, name, **kwargs):
    return catalog_service.create_category(org.id, name, user_id=user.id, **kwargs)


class TestCategories:

    def test_list_is_ordered_and_searchable(self, db_session, org_a, org_b, owner_a, owner_b):
        new_category(org_a, owner_a, "Pod Kits", display_order=2)
        new_category(org_a, owner_a, "E-Liquids", display_order=1)
        new_category(org_a, owner_a, "Coils", display_order=2)
        new_category(org_b, owner_b, "Tanks")

        listed = catalog_service.list_categories(org_a.id)
        assert [c["name"] for c in listed["categories"]] == ["E-Liquids", "Coils", "Pod Kits"]
        assert listed["total"] == 3

        found = catalog_service.list_categories(org_a.id, search="pod")
        assert [c["slug"] for c in found["categories"]] == ["pod-kits"]

        paged = catalog_service.list_categories(org_a.id, page=2, page_size=2)
        assert [c["name"] for c in paged["categories"]] == ["Pod Kits"]
        assert paged["pages"] == 2

    def test_create_is_audited(self, db_session, org_a, owner_a):
        category = new_category(org_a, owner_a, "Disposables")

        audit = db_session.query(AuditLog).filter_by(action="create_category").one()
        assert audit.entity_id == category.id
        assert audit.user_id == owner_a.id

    def test_update_keeps_slug(self, db_session, org_a, owner_a):
        category = new_category(org_a, owner_a, "Juices")

        updated = catalog_service.update_category(
            organization_id=org_a.id, user_id=owner_a.id, category_id=category.id,
            name="E-Juices", display_order=4,
        )

        assert (updated.name, updated.slug, updated.display_order) == ("E-Juices", "juices", 4)
        audit = db_session.query(AuditLog).filter_by(action="update_category").one()
        assert audit.old_values == {"name": "Juices", "display_order": 0}

    @pytest.mark.parametrize("changes", [{"slug": "x"}, {"name": "  "}, {"display_order": -1}])
    def test_bad_update(self, db_session, org_a, owner_a, changes):
        category = new_category(org_a, owner_a, "Juices")

        with pytest.raises(ValidationError):
            catalog_service.update_category(
                organization_id=org_a.id, user_id=owner_a.id, category_id=category.id, **changes,
            )

    def test_soft_delete(self, db_session, org_a, branch_a, owner_a):
        category = new_category(org_a, owner_a, "Disposables")
        product = new_product(org_a, owner_a, category_id=category.id)

        catalog_service.delete_category(organization_id=org_a.id, user_id=owner_a.id, category_id=category.id)

        db_session.expire_all()
        assert db_session.get(Category, category.id).deleted_at is not None
        assert db_session.get(Product, product.id).category_id == category.id
        assert catalog_service.list_categories(org_a.id)["total"] == 0

        with pytest.raises(ValidationError):
            new_product(
                org_a, owner_a,
                VariantInput(name="Mint", sku="DB5K-MNT", selling_price=30000, capital_cost=17500),
                category_id=category.id,
            )
        with pytest.raises(NotFoundError):
            catalog_service.update_category(
                organization_id=org_a.id, user_id=owner_a.id, category_id=category.id, name="Again",
            )
        with pytest.raises(NotFoundError):
            catalog_service.delete_category(organization_id=org_a.id, user_id=owner_a.id, category_id=category.id)

    def test_other_tenant_category(self, db_session, org_a, org_b, owner_a, owner_b, branch_a):
        foreign = new_category(org_b, owner_b, "Tanks")

        with pytest.raises(NotFoundError):
            catalog_service.delete_category(organization_id=org_a.id, user_id=owner_a.id, category_id=foreign.id)
        with pytest.raises(ValidationError):
            new_product(org_a, owner_a, category_id=foreign.id)


class TestUpdateProduct:

    def test_edit_fields(self, db_session, org_a, branch_a, owner_a, variant_a):
        category = new_category(org_a, owner_a, "Pod Kits")

        product = catalog_service.update_product(
            organization_id=org_a.id, user_id=owner_a.id, product_id=variant_a.product_id,
            name="Pod Kit X1 Pro", brand="Voopoo", category_id=category.id,
        )

        assert (product.name, product.brand, product.category_id) == ("Pod Kit X1 Pro", "Voopoo", category.id)
        audit = db_session.query(AuditLog).filter_by(action="update_product").one()
        assert audit.old_values == {"name": "Pod Kit X1", "brand": None, "category_id": None}

    def test_added_variants_are_seeded_in_active_branches(self, db_session, org_a, branch_a, branch_a2, owner_a, variant_a):
        branch_a2.is_active = False
        db_session.commit()

        catalog_service.update_product(
            organization_id=org_a.id, user_id=owner_a.id, product_id=variant_a.product_id,
            add_variants=[
                VariantInput(name="Silver", sku="PKX1-SLV", selling_price=45000, capital_cost=30000, initial_stock=6),
                VariantInput(name="Gold", sku="PKX1-GLD", selling_price=48000, capital_cost=31000),
            ],
        )

        added = {v.sku: v for v in db_session.query(ProductVariant).filter_by(product_id=variant_a.product_id)}
        assert sorted(added) == ["PKX1-BLK", "PKX1-GLD", "PKX1-SLV"]

        records = {
            (r.branch_id, r.variant_id): r.quantity
            for r in db_session.query(InventoryRecord).filter(
                InventoryRecord.variant_id.in_([added["PKX1-SLV"].id, added["PKX1-GLD"].id])
            )
        }
        assert records == {
            (branch_a.id, added["PKX1-SLV"].id): 6,
            (branch_a.id, added["PKX1-GLD"].id): 0,
        }

        movement = db_session.query(StockMovement).filter_by(variant_id=added["PKX1-SLV"].id).one()
        assert (movement.movement_type, movement.quantity_after) == ("initial_stock", 6)
        assert verify_ledger(org_a.id) == []

        snapshot = catalog_service.resolve_variant(org_a.id, added["PKX1-SLV"].id)
        assert snapshot.product_name == "Pod Kit X1"

    def test_taken_sku_changes_nothing(self, db_session, org_a, branch_a, owner_a, variant_a, variant_a2):
        with pytest.raises(ConflictError):
            catalog_service.update_product(
                organization_id=org_a.id, user_id=owner_a.id, product_id=variant_a.product_id,
                name="Renamed",
                add_variants=[VariantInput(name="Mango", sku="SNJ-MNG-35", selling_price=1, capital_cost=1)],
            )

        db_session.expire_all()
        assert db_session.get(Product, variant_a.product_id).name == "Pod Kit X1"
        assert db_session.query(ProductVariant).filter_by(product_id=variant_a.product_id).count() == 1

    def test_deleted_product(self, db_session, org_a, owner_a, variant_a):
        catalog_service.set_product_state(
            organization_id=org_a.id, user_id=owner_a.id, product_id=variant_a.product_id, state="deleted",
        )

        with pytest.raises(LifecycleError):
            catalog_service.update_product(
                organization_id=org_a.id, user_id=owner_a.id, product_id=variant_a.product_id, name="Back",
            )

    def test_other_tenant_product(self, db_session, org_a, owner_a, variant_b):
        with pytest.raises(NotFoundError):
            catalog_service.update_product(
                organization_id=org_a.id, user_id=owner_a.id, product_id=variant_b.product_id, name="Mine",
            )

    @pytest.mark.parametrize("changes", [{}, {"slug": "x"}, {"lifecycle_state": "active"}, {"name": ""}])
    def test_bad_changes(self, db_session, org_a, owner_a, variant_a, changes):
        with pytest.raises(ValidationError):
            catalog_service.update_product(
                organization_id=org_a.id, user_id=owner_a.id, product_id=variant_a.product_id, **changes,
            )
