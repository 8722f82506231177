"""
Pytest fixtures for posledger backend tests.

Provides test database setup, tenant fixtures (two organizations with
branches, owner/staff users, a stocked variant) and the test client.
"""

import pytest
from posledger import create_app
from posledger.extensions import db
from posledger.models import (
    Organization, Branch, User, Product, ProductVariant, InventoryRecord, StockMovement,
)
from posledger.models.auth import ROLE_OWNER, ROLE_STAFF
from posledger.models.inventory import MOVEMENT_INITIAL_STOCK, REFERENCE_PRODUCT
from posledger.services.session_service import create_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Vape Shop Manila", slug="vape-shop-manila", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Cebu Clouds", slug="cebu-clouds", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


def make_branch(session, org, name, *, slug, is_default=False, is_active=True):
    branch = Branch(
        organization_id=org.id,
        name=name,
        slug=slug,
        is_default=is_default,
        is_active=is_active,
    )
    session.add(branch)
    session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a(db_session, org_a):
    """Default branch of Organization A."""
    return make_branch(db_session, org_a, "Makati", slug="makati", is_default=True)


@pytest.fixture(scope='function')
def branch_a2(db_session, org_a, branch_a):
    """Second branch of Organization A."""
    return make_branch(db_session, org_a, "Quezon City", slug="quezon-city")


@pytest.fixture(scope='function')
def branch_b(db_session, org_b):
    return make_branch(db_session, org_b, "Cebu IT Park", slug="cebu-it-park", is_default=True)


def make_user(session, org, full_name, *, role=ROLE_STAFF, **flags):
    user = User(
        organization_id=org.id,
        full_name=full_name,
        email=f"{full_name.lower().replace(' ', '.')}@example.com",
        role=role,
        can_view_profits=flags.get("can_view_profits", False),
        can_manage_inventory=flags.get("can_manage_inventory", False),
        can_view_reports=flags.get("can_view_reports", False),
        is_active=flags.get("is_active", True),
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def owner_a(db_session, org_a):
    return make_user(db_session, org_a, "Owner A", role=ROLE_OWNER)


@pytest.fixture(scope='function')
def cashier_a(db_session, org_a):
    """Staff without any permission flag."""
    return make_user(db_session, org_a, "Cashier A")


@pytest.fixture(scope='function')
def stockman_a(db_session, org_a):
    """Staff allowed to manage inventory but not to see profits."""
    return make_user(db_session, org_a, "Stockman A", can_manage_inventory=True)


@pytest.fixture(scope='function')
def owner_b(db_session, org_b):
    return make_user(db_session, org_b, "Owner B", role=ROLE_OWNER)


def make_variant(session, org, branches_stock, *, product_name, variant_name, sku,
                 selling_price=45000, capital_cost=30000, low_stock_threshold=10):
    """
    Create a product with one variant and seed stock.

    branches_stock: list of (branch, quantity). Each seed writes an
    initial_stock movement so the ledger replays cleanly.
    """
    product = Product(organization_id=org.id, name=product_name, slug=sku.lower())
    session.add(product)
    session.flush()

    variant = ProductVariant(
        organization_id=org.id,
        product_id=product.id,
        name=variant_name,
        sku=sku,
        selling_price=selling_price,
        capital_cost=capital_cost,
        low_stock_threshold=low_stock_threshold,
    )
    session.add(variant)
    session.flush()

    for branch, quantity in branches_stock:
        session.add(InventoryRecord(
            organization_id=org.id,
            branch_id=branch.id,
            variant_id=variant.id,
            quantity=quantity,
        ))
        if quantity:
            session.add(StockMovement(
                organization_id=org.id,
                branch_id=branch.id,
                variant_id=variant.id,
                movement_type=MOVEMENT_INITIAL_STOCK,
                quantity_change=quantity,
                quantity_before=0,
                quantity_after=quantity,
                reference_type=REFERENCE_PRODUCT,
                reference_id=product.id,
            ))
    session.commit()
    return variant


@pytest.fixture(scope='function')
def variant_a(db_session, org_a, branch_a):
    """Pod Kit X1 (Black): 10 in stock at branch_a, P450.00 / cost P300.00."""
    return make_variant(
        db_session, org_a, [(branch_a, 10)],
        product_name="Pod Kit X1", variant_name="Black", sku="PKX1-BLK",
    )


@pytest.fixture(scope='function')
def variant_a2(db_session, org_a, branch_a):
    """Salt Nic Juice (Mango): 5 in stock at branch_a, P350.00 / cost P180.00."""
    return make_variant(
        db_session, org_a, [(branch_a, 5)],
        product_name="Salt Nic Juice", variant_name="Mango 35mg", sku="SNJ-MNG-35",
        selling_price=35000, capital_cost=18000,
    )


@pytest.fixture(scope='function')
def variant_b(db_session, org_b, branch_b):
    return make_variant(
        db_session, org_b, [(branch_b, 50)],
        product_name="Cloud Tank", variant_name="Clear", sku="CT-CLR",
        selling_price=60000, capital_cost=40000,
    )


def stock_of(session, branch, variant) -> int:
    """Current quantity straight from the database (0 when no record)."""
    session.expire_all()
    record = session.query(InventoryRecord).filter_by(
        branch_id=branch.id, variant_id=variant.id
    ).first()
    return record.quantity if record else 0


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def owner_headers(db_session, owner_a):
    _, token = create_session(owner_a.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def cashier_headers(db_session, cashier_a):
    _, token = create_session(cashier_a.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def stockman_headers(db_session, stockman_a):
    _, token = create_session(stockman_a.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def read_stock(db_session):
    """read_stock(branch, variant) -> current quantity."""
    return lambda branch, variant: stock_of(db_session, branch, variant)


@pytest.fixture(scope='function')
def variant_factory(db_session):
    """variant_factory(org, [(branch, qty)], product_name=..., variant_name=..., sku=...)"""
    return lambda org, branches_stock, **kwargs: make_variant(db_session, org, branches_stock, **kwargs)
