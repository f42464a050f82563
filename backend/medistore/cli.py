# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/medistore/cli.py
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
# Stores:
# - python -m flask stores list
# - python -m flask stores create --email shop@example.com --name "City Pharmacy" --address "1 Main St" --timezone Asia/Kolkata
#
# Catalog:
# - python -m flask catalog seed
#   Insert the starter medicine catalog when the table is empty.
#
# Analytics:
# - python -m flask analytics top --email shop@example.com --period thisMonth --limit 10
# - python -m flask analytics sales --email shop@example.com --period today

import click
from flask.cli import with_appcontext

from .errors import MedistoreError
from .extensions import db
from .services import analytics_service, catalog_service, store_service


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

    click.echo("PASS Database reset complete. Run 'python -m flask catalog seed' to load medicines.")


@click.group('stores')
def stores_group():
    """Store (tenant) management."""


@stores_group.command('list')
@with_appcontext
def list_stores_cli():
    stores = store_service.list_stores()
    if not stores:
        click.echo("No stores found")
        return
    for store in stores:
        click.echo(f"{store.id:>4}  {store.email:<32} {store.name:<24} tz={store.timezone}")


@stores_group.command('create')
@click.option('--email', required=True, help='Store email (unique identity)')
@click.option('--name', required=True, help='Store name')
@click.option('--address', default='', help='Street address')
@click.option('--timezone', 'tz_name', default='UTC', help='IANA timezone used for analytics buckets')
@with_appcontext
def create_store_cli(email, name, address, tz_name):
    """Create a new store."""
    try:
        store = store_service.create_store(email, name, address, tz_name)
    except MedistoreError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Email: {store.email})")


@click.group('catalog')
def catalog_group():
    """Medicine catalog commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog_cli():
    inserted = catalog_service.seed_common_medicines()
    if inserted == 0:
        click.echo("SKIP Catalog already populated")
    else:
        click.echo(f"PASS Seeded {inserted} medicines")


@click.group('analytics')
def analytics_group():
    """Sales analytics inspection."""


@analytics_group.command('top')
@click.option('--email', required=True, help='Store email')
@click.option('--period', default='thisMonth', show_default=True)
@click.option('--limit', type=int, default=10, show_default=True)
@with_appcontext
def top_selling_cli(email, period, limit):
    """Print the top-selling medicines for a period."""
    try:
        items = analytics_service.get_top_selling(email, period, limit)
    except MedistoreError as e:
        click.echo(f"FAIL {e}")
        return

    if not items:
        click.echo("No sales in this period")
        return
    for rank, item in enumerate(items, start=1):
        click.echo(f"{rank:>3}. {item['med_id']:<10} {item['name'] or '':<28} qty={item['quantity']:<6} revenue={item['revenue']:.2f}")


@analytics_group.command('sales')
@click.option('--email', required=True, help='Store email')
@click.option('--period', default='today', show_default=True)
@with_appcontext
def sales_cli(email, period):
    """Print the sales summary for a named period."""
    try:
        result = analytics_service.get_sales_analytics(email, period)
    except MedistoreError as e:
        click.echo(f"FAIL {e}")
        return

    current = result["current"]
    click.echo(f"Period: {result['period']['start']} .. {result['period']['end']}")
    click.echo(f"Sales: {current['total_sales']:.2f} over {current['transaction_count']} bills ({current['items_sold']} items)")
    click.echo(f"Growth: {result['growth']['percentage']}%")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(analytics_group)
