# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/packdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenants:
# - python -m flask tenants list
# - python -m flask tenants create --name "Acme" --slug acme --owner-subject "auth0|abc"
# - python -m flask tenants add-org-ref --tenant-id 1 --org-id org_123 --environment prod
#   Store an identity-provider organization id for a tenant.
#
# Users:
# - python -m flask users list --tenant-id 1
# - python -m flask users token --subject "auth0|abc" --tenant-id 1 --roles owner
#   Mint a signed identity token with the configured IDENTITY_SECRET (dev only).
#
# Products:
# - python -m flask products list --tenant-id 1

import time

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Tenant, User, Product
from .services.identity_service import encode_identity
from .services.tenant_service import add_identity_ref
from flask import current_app


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


# =============================================================================
# TENANT MANAGEMENT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<25} {'Slug':<15} {'Active':<8} {'Owner subject':<30} {'Org refs'}")
    click.echo("="*100)

    for tenant in tenants:
        active_str = "Yes" if tenant.is_active else "No"
        refs = ", ".join(sorted(tenant.external_org_ids())) or "-"
        click.echo(f"{tenant.id:<5} {tenant.name:<25} {tenant.slug:<15} {active_str:<8} {tenant.owner_subject:<30} {refs}")

    click.echo("="*100 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--slug', required=True, help='Short unique slug')
@click.option('--owner-subject', required=True, help='Identity-provider subject of the owner')
@with_appcontext
def create_tenant_cli(name, slug, owner_subject):
    """Create a new tenant with its recorded owner."""
    existing = db.session.query(Tenant).filter_by(slug=slug).first()
    if existing:
        click.echo(f"FAIL Tenant with slug '{slug}' already exists")
        return

    tenant = Tenant(name=name, slug=slug, owner_subject=owner_subject, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Slug: {tenant.slug})")


@tenants_group.command('add-org-ref')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--org-id', 'external_org_id', required=True, help='Identity-provider organization id')
@click.option('--environment', default='default', type=click.Choice(['default', 'prod', 'dev', 'legacy']))
@with_appcontext
def add_org_ref_cli(tenant_id, external_org_id, environment):
    """Attach an identity-provider organization id to a tenant."""
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    try:
        ref = add_identity_ref(tenant_id, external_org_id, environment)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS {ref.external_org_id} ({ref.environment}) -> tenant {tenant.slug}")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and token commands."""


@users_group.command('list')
@click.option('--tenant-id', type=int, help='Filter by tenant ID')
@with_appcontext
def list_users(tenant_id):
    """List users with their tenant link and role."""
    query = db.session.query(User)
    if tenant_id:
        query = query.filter_by(tenant_id=tenant_id)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Subject':<35} {'Tenant':<8} {'Role':<8} {'Active':<8} {'Email'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(
            f"{user.id:<5} {user.subject:<35} {str(user.tenant_id or '-'):<8} "
            f"{user.role or '-':<8} {active_str:<8} {user.email or '-'}"
        )
    click.echo("="*90 + "\n")


@users_group.command('token')
@click.option('--subject', required=True, help='Token subject')
@click.option('--tenant-id', type=int, help='Tenant claim')
@click.option('--roles', default='', help='Comma separated roles claim (omit for none)')
@click.option('--ttl', type=int, default=3600, help='Lifetime in seconds')
@with_appcontext
def mint_token(subject, tenant_id, roles, ttl):
    """DEV ONLY: mint a signed identity token."""
    ns = current_app.config["IDENTITY_CLAIM_NAMESPACE"]
    now = int(time.time())
    claims = {"sub": subject, "iat": now, "exp": now + ttl}
    if tenant_id:
        claims[f"{ns}tenantId"] = tenant_id
    if roles:
        claims[f"{ns}roles"] = [r.strip() for r in roles.split(",") if r.strip()]
    if current_app.config.get("IDENTITY_AUDIENCE"):
        claims["aud"] = current_app.config["IDENTITY_AUDIENCE"]
    if current_app.config.get("IDENTITY_ISSUER"):
        claims["iss"] = current_app.config["IDENTITY_ISSUER"]

    click.echo(encode_identity(claims))


# =============================================================================
# PRODUCT COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Product inspection commands."""


@products_group.command('list')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def list_products_cli(tenant_id):
    """List a tenant's products with stock."""
    products = (
        db.session.query(Product)
        .filter_by(tenant_id=tenant_id)
        .order_by(Product.sku.asc())
        .all()
    )
    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'SKU':<16} {'Name':<30} {'Stock':<8} {'Location'}")
    click.echo("="*80)
    for p in products:
        click.echo(f"{p.id:<6} {p.sku:<16} {p.name[:30]:<30} {p.stock_quantity:<8} {p.warehouse_location}")
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
