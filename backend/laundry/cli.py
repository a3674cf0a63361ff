# Overview: Flask CLI command groups for tenant administration, item registration and maintenance.

# backend/laundry/cli.py
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
# Tenants (hotels):
# - python -m flask tenants list [--active-only]
# - python -m flask tenants create --name "Grand Hotel" [--email ops@grand.example] [--lat 41.0 --lon 29.0]
# - python -m flask tenants deactivate 3
# - python -m flask tenants hard-delete 3 --yes
#   Refused while the tenant has open pickups or deliveries.
#
# Items:
# - python -m flask items register --tenant-id 1 --type-id 2 --tag E200341201
# - python -m flask items scan E200341201 E200341202 [--tenant-id 1]
#   Read-only reconciliation of tags against the ledger.

import click
from flask.cli import with_appcontext

from .errors import LaundryError
from .extensions import db
from .services import item_service, scan_service, tenant_service


@click.group('system')
def system_group():
    """System maintenance commands."""


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


@click.group('tenants')
def tenants_group():
    """Hotel (tenant) management."""


@tenants_group.command('list')
@click.option('--active-only', is_flag=True, help='Hide deactivated tenants')
@with_appcontext
def list_tenants_cli(active_only):
    """List tenants."""
    tenants = tenant_service.list_tenants(active_only=active_only)

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Email':<28} {'Active':<8} {'Items'}")
    click.echo("="*80)

    for tenant in tenants:
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(
            f"{tenant.id:<5} {tenant.name:<30} {tenant.email or '-':<28} {active_str:<8} {tenant.items.count()}"
        )

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Hotel name')
@click.option('--email', help='Contact email (unique)')
@click.option('--phone', help='Contact phone')
@click.option('--address', help='Street address')
@click.option('--lat', 'latitude', type=float, help='Hotel latitude (enables delivery proximity check)')
@click.option('--lon', 'longitude', type=float, help='Hotel longitude')
@with_appcontext
def create_tenant_cli(name, email, phone, address, latitude, longitude):
    """Register a new hotel."""
    try:
        tenant = tenant_service.create_tenant(
            name,
            email=email,
            phone=phone,
            address=address,
            latitude=latitude,
            longitude=longitude,
        )
    except LaundryError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")


@tenants_group.command('deactivate')
@click.argument('tenant_id', type=int)
@with_appcontext
def deactivate_tenant_cli(tenant_id):
    """Soft-deactivate a tenant (no new items or batches)."""
    try:
        tenant = tenant_service.deactivate_tenant(tenant_id)
    except LaundryError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Tenant {tenant.id} ({tenant.name}) deactivated")


@tenants_group.command('hard-delete')
@click.argument('tenant_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def hard_delete_tenant_cli(tenant_id, yes):
    """
    DANGER: Permanently delete a tenant and all of its items, batches and history.
    """
    if not yes:
        click.confirm(f"WARN This will DELETE tenant {tenant_id} and all of its data. Are you sure?", abort=True)

    try:
        removed = tenant_service.hard_delete_tenant(tenant_id)
    except LaundryError as e:
        click.echo(f"FAIL {e.message}")
        for key, value in e.details.items():
            click.echo(f"  {key}: {value}")
        return

    click.echo(f"PASS Tenant {tenant_id} deleted")
    for step, count in removed.items():
        click.echo(f"  {step:<15} {count}")


@click.group('items')
def items_group():
    """Item registration and inspection."""


@items_group.command('register')
@click.option('--tenant-id', type=int, required=True, help='Owning tenant')
@click.option('--type-id', 'item_type_id', type=int, required=True, help='Item type id')
@click.option('--tag', 'rfid_tags', multiple=True, required=True, help='RFID tag (repeatable)')
@click.option('--location', help='Free-text location')
@with_appcontext
def register_items_cli(tenant_id, item_type_id, rfid_tags, location):
    """Register one or more tagged items."""
    entries = [
        {"rfid_tag": tag, "item_type_id": item_type_id, "location": location}
        for tag in rfid_tags
    ]
    try:
        result = item_service.register_items_bulk(tenant_id, entries)
    except LaundryError as e:
        click.echo(f"FAIL {e.message}")
        return

    for item in result.created:
        click.echo(f"PASS Registered {item.rfid_tag} (ID: {item.id})")
    for error in result.errors:
        click.echo(f"FAIL {error['rfid_tag']}: {error['error']}")


@items_group.command('scan')
@click.argument('rfid_tags', nargs=-1, required=True)
@click.option('--tenant-id', type=int, help='Only match this tenant')
@with_appcontext
def scan_cli(rfid_tags, tenant_id):
    """Reconcile tags against the ledger (read-only)."""
    result = scan_service.scan(list(rfid_tags), tenant_id=tenant_id)

    click.echo(f"Found: {result.found}  Not found: {result.not_found}")
    for item in result.items:
        click.echo(f"  {item.rfid_tag:<30} tenant={item.tenant_id:<5} {item.status}")
    for tag in result.not_found_tags:
        click.echo(f"  {tag:<30} NOT FOUND")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(items_group)
