# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/salonerp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default channels
#   (salon branch, home service, online store) when no locations exist.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Locations:
# - python -m flask locations list [--all]
#   List locations (use --all to include inactive).
# - python -m flask locations dedupe [--dry-run]
#   Merge active locations that share a name into the oldest one.
#
# Inventory:
# - python -m flask inventory check-negative
#   List stock rows below zero (exit code 1 when any exist).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location
from .models.locations import LOCATION_KIND_BRANCH, LOCATION_KIND_HOME_SERVICE, LOCATION_KIND_ONLINE
from .services import maintenance_service
from .services.inventory_service import find_negative_stock


DEFAULT_LOCATIONS = [
    ("Main Salon", LOCATION_KIND_BRANCH),
    ("Home Service", LOCATION_KIND_HOME_SERVICE),
    ("Online Store", LOCATION_KIND_ONLINE),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and seed the default channels when no locations exist."""
    click.echo("START Initializing SalonERP...")
    db.create_all()

    if db.session.query(Location).count() == 0:
        for name, kind in DEFAULT_LOCATIONS:
            db.session.add(Location(name=name, kind=kind, is_active=True))
        db.session.commit()
        click.echo(f"PASS Created {len(DEFAULT_LOCATIONS)} default locations")
    else:
        click.echo("PASS Locations already exist, skipping defaults")

    click.echo("DONE SalonERP initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('locations')
def locations_group():
    """Location inspection and cleanup."""


@locations_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive locations')
@with_appcontext
def list_locations(show_all):
    q = db.session.query(Location)
    if not show_all:
        q = q.filter(Location.is_active.is_(True))
    locations = q.order_by(Location.id.asc()).all()
    if not locations:
        click.echo("No locations found")
        return
    for loc in locations:
        state = "active" if loc.is_active else "inactive"
        click.echo(f"{loc.id:>4}  {loc.name:<30} {loc.kind:<14} {state}")


@locations_group.command('dedupe')
@click.option('--dry-run', is_flag=True, help='Report duplicates without changing anything')
@with_appcontext
def dedupe_locations(dry_run):
    result = maintenance_service.dedupe_locations(dry_run=dry_run)
    if not result["groups"]:
        click.echo("PASS No duplicate locations")
        return
    for group in result["groups"]:
        removed = ", ".join(str(i) for i in group["removed_ids"])
        verb = "Would merge" if dry_run else "Merged"
        click.echo(f"{verb} '{group['name']}': keep {group['kept_id']}, remove {removed}")
    click.echo(f"DONE {result['removed_count']} duplicate location(s)")


@click.group('inventory')
def inventory_group():
    """Stock ledger checks."""


@inventory_group.command('check-negative')
@with_appcontext
def check_negative():
    rows = find_negative_stock()
    if not rows:
        click.echo("PASS No negative stock")
        return
    for row in rows:
        click.echo(f"WARN product={row.product_id} location={row.location_id} stock={row.stock}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(inventory_group)
