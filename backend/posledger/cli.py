# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (dev convenience; use `flask db upgrade` for real deployments).
# - python -m flask system seed-demo
#   Create a demo organization with a branch, owner/staff users, products and stock.
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Vape Shop Manila" --owner-email owner@example.com
#
# Users and tokens:
# - python -m flask users list --org-id 1
# - python -m flask users create --org-id 1 --name "Ana Cruz" --role staff --can-manage-inventory
# - python -m flask users issue-token --user-id 2
#   Print a bearer token for the API (shown once).
#
# Ledger maintenance:
# - python -m flask ledger verify --org-id 1 [--branch-id 1]
#   Replay stock movements and report inventory records that disagree.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, User
from .models.auth import ROLE_OWNER, ROLE_STAFF
from .services import branch_service, catalog_service, session_service
from .services.catalog_service import VariantInput
from .services.ledger_service import verify_ledger
from .slug_utils import slugify, unique_slug


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that don't exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


def _create_org(name: str, owner_email: str | None) -> Organization:
    slug = unique_slug(
        slugify(name),
        lambda s: db.session.query(Organization.id).filter_by(slug=s).first() is not None,
    )
    org = Organization(name=name, slug=slug, owner_email=owner_email, is_active=True)
    db.session.add(org)
    db.session.commit()
    return org


def _create_user(org_id: int, full_name: str, email: str | None, role: str, **flags) -> User:
    user = User(
        organization_id=org_id,
        full_name=full_name,
        email=email,
        role=role,
        can_view_profits=flags.get("can_view_profits", False),
        can_manage_inventory=flags.get("can_manage_inventory", False),
        can_view_reports=flags.get("can_view_reports", False),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


@system_group.command('seed-demo')
@click.option('--org', 'org_name', default='Demo Vape Shop', help='Organization name')
@with_appcontext
def seed_demo(org_name):
    """
    Seed a demo tenant: one branch, an owner and a cashier, three products.

    Prints bearer tokens for both users.
    """
    click.echo("START Seeding demo organization...")
    db.create_all()

    org = _create_org(org_name, "owner@demo.local")
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")

    owner = _create_user(org.id, "Demo Owner", "owner@demo.local", ROLE_OWNER)
    cashier = _create_user(org.id, "Demo Cashier", "cashier@demo.local", ROLE_STAFF)
    click.echo(f"PASS Created users: owner (ID: {owner.id}), cashier (ID: {cashier.id})")

    branch = branch_service.create_branch(organization_id=org.id, user_id=owner.id, name="Main Branch")
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, default)")

    demo_products = [
        ("Pod Kit X1", "Voltic", [
            VariantInput(name="Black", sku="PKX1-BLK", selling_price=45000, capital_cost=30000, initial_stock=10),
            VariantInput(name="Silver", sku="PKX1-SLV", selling_price=45000, capital_cost=30000, initial_stock=6),
        ]),
        ("Salt Nic Juice 30ml", "Cloudline", [
            VariantInput(name="Mango 35mg", sku="SNJ-MNG-35", selling_price=35000, capital_cost=18000, initial_stock=24),
            VariantInput(name="Mint 50mg", sku="SNJ-MNT-50", selling_price=35000, capital_cost=18000, initial_stock=3),
        ]),
        ("Replacement Coil 0.8ohm", "Voltic", [
            VariantInput(name="5-pack", sku="COIL-08-5", selling_price=25000, capital_cost=12000, initial_stock=40),
        ]),
    ]
    for name, brand, variants in demo_products:
        product = catalog_service.create_product(
            organization_id=org.id,
            user_id=owner.id,
            name=name,
            brand=brand,
            variants=variants,
        )
        click.echo(f"PASS Created product: {product.name} ({len(variants)} variants)")

    _, owner_token = session_service.create_session(owner.id)
    _, cashier_token = session_service.create_session(cashier.id)

    click.echo("\nDONE Demo data ready. Bearer tokens (shown once):")
    click.echo(f"   owner   -> {owner_token}")
    click.echo(f"   cashier -> {cashier_token}")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Slug':<25} {'Active':<8} {'Users'}")
    click.echo("="*80)

    for org in orgs:
        user_count = db.session.query(User).filter_by(organization_id=org.id).count()
        active_str = "Yes" if org.is_active and org.deleted_at is None else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.slug:<25} {active_str:<8} {user_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--owner-email', help='Contact email of the owner')
@with_appcontext
def create_org_cli(name, owner_email):
    """Create a new organization (tenant)."""
    org = _create_org(name, owner_email)
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Slug: {org.slug})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', 'full_name', prompt=True, help='Full name')
@click.option('--email', default=None, help='Email address')
@click.option('--role', type=click.Choice([ROLE_OWNER, ROLE_STAFF]), default=ROLE_STAFF, show_default=True)
@click.option('--can-view-profits', is_flag=True)
@click.option('--can-manage-inventory', is_flag=True)
@click.option('--can-view-reports', is_flag=True)
@with_appcontext
def create_user_cli(org_id, full_name, email, role, can_view_profits, can_manage_inventory, can_view_reports):
    """Create a user in an organization."""
    org = db.session.get(Organization, org_id)
    if not org:
        click.echo(f"FAIL Organization {org_id} not found")
        sys.exit(1)

    if email and db.session.query(User).filter_by(organization_id=org_id, email=email).first():
        click.echo(f"FAIL User with email '{email}' already exists in organization {org_id}")
        sys.exit(1)

    user = _create_user(
        org_id, full_name, email, role,
        can_view_profits=can_view_profits,
        can_manage_inventory=can_manage_inventory,
        can_view_reports=can_view_reports,
    )
    click.echo(f"PASS Created user: {user.full_name} (ID: {user.id}, Role: {user.role})")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List users with role, permissions and active status."""
    query = db.session.query(User)
    if org_id:
        query = query.filter_by(organization_id=org_id)
    users = query.order_by(User.organization_id, User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Org':<5} {'Name':<25} {'Role':<8} {'Active':<8} {'Permissions'}")
    click.echo("="*100)
    for user in users:
        active_str = "Yes" if user.is_active and user.deleted_at is None else "No"
        perms = ", ".join(sorted(user.permissions())) or "-"
        click.echo(f"{user.id:<5} {user.organization_id:<5} {user.full_name:<25} {user.role:<8} {active_str:<8} {perms}")
    click.echo("="*100 + "\n")


@users_group.command('issue-token')
@click.option('--user-id', type=int, required=True, help='User ID')
@click.option('--ttl-hours', type=int, default=None, help='Token lifetime (defaults to SESSION_TTL_HOURS)')
@with_appcontext
def issue_token_cli(user_id, ttl_hours):
    """Issue a bearer token for a user. The token is printed once."""
    try:
        session, token = session_service.create_session(user_id, ttl_hours=ttl_hours)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        sys.exit(1)

    click.echo(f"PASS Token for user {user_id} (expires {session.expires_at:%Y-%m-%d %H:%M} UTC):")
    click.echo(token)


@click.group('ledger')
def ledger_group():
    """Inventory ledger maintenance commands."""


@ledger_group.command('verify')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--branch-id', type=int, default=None, help='Limit to one branch')
@click.option('--variant-id', type=int, default=None, help='Limit to one variant')
@with_appcontext
def verify_ledger_cli(org_id, branch_id, variant_id):
    """
    Replay stock movements and compare with current inventory.

    Exits with status 1 when any discrepancy is found.
    """
    discrepancies = verify_ledger(org_id, branch_id=branch_id, variant_id=variant_id)

    if not discrepancies:
        click.echo(f"PASS Ledger consistent for organization {org_id}")
        return

    click.echo(f"FAIL {len(discrepancies)} discrepancies found:")
    for d in discrepancies:
        click.echo(
            f"   branch={d.branch_id} variant={d.variant_id} {d.reason} "
            f"movement={d.movement_id or '-'} expected={d.expected} actual={d.actual}"
        )
    sys.exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
