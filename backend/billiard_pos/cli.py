# Overview: Flask CLI command groups for bootstrap, session sweeps and inventory checks.

# backend/billiard_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the schema, default settings and tables 1..table_count.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Sessions:
# - python -m flask sessions auto-stop
#   Stop hour sessions past 60 minutes and countdown sessions whose time is used up.
#   Safe to run from cron every minute.
#
# Inventory:
# - python -m flask inventory low-stock [--threshold 5]
#   List products at or below the low-stock threshold.
# - python -m flask inventory verify-ledger [--product-id 3]
#   Replay the inventory ledger and report products whose stored quantity disagrees.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Setting
from .services import session_service
from .services.inventory_service import low_stock
from .services.ledger_service import verify_ledger
from .services.settings_service import (
    KEY_HALF_HOUR_RATE,
    KEY_HOURLY_RATE,
    KEY_TABLE_COUNT,
    get_settings,
)
from .services.table_service import set_table_count


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the hall: schema, default settings and tables.

    Existing settings are kept; only keys never saved get their config default.
    """
    click.echo("START Initializing billiard POS...")

    db.create_all()
    click.echo("PASS Schema ready")

    cfg = current_app.config
    defaults = {
        KEY_HOURLY_RATE: str(cfg["DEFAULT_HOURLY_RATE"]),
        KEY_HALF_HOUR_RATE: str(cfg["DEFAULT_HALF_HOUR_RATE"]),
        KEY_TABLE_COUNT: str(cfg["DEFAULT_TABLE_COUNT"]),
    }
    for key, value in defaults.items():
        if db.session.get(Setting, key) is None:
            db.session.add(Setting(key=key, value=value))
            click.echo(f"PASS Default {key} = {value}")
    db.session.commit()

    settings = get_settings()
    result = set_table_count(settings[KEY_TABLE_COUNT])
    changes = result["changes"]
    click.echo(
        f"PASS Tables ready: {result['count']} "
        f"(created {len(changes['created'])}, reactivated {len(changes['reactivated'])})"
    )
    click.echo(
        f"PASS Rates: hourly {settings[KEY_HOURLY_RATE]}, half hour {settings[KEY_HALF_HOUR_RATE]}"
    )


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('sessions')
def sessions_group():
    """Table session commands."""


@sessions_group.command('auto-stop')
@with_appcontext
def auto_stop():
    """Stop every session whose time is up."""
    stopped = session_service.auto_stop_expired()
    if not stopped:
        click.echo("PASS No sessions due")
        return
    click.echo(f"PASS Stopped {len(stopped)} session(s): tables {', '.join(str(t) for t in stopped)}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Override LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock_command(threshold):
    """List products at or below the low-stock threshold."""
    products = low_stock(threshold)
    if not products:
        click.echo("PASS All products above threshold")
        return

    click.echo(f"\n{'ID':<6} {'Name':<30} {'Category':<12} {'Qty':>5}")
    click.echo("-" * 56)
    for p in products:
        click.echo(f"{p.id:<6} {p.name[:30]:<30} {p.category:<12} {p.quantity:>5}")
    click.echo(f"\nTotal: {len(products)} product(s)")


@inventory_group.command('verify-ledger')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_ledger_command(product_id):
    """Replay the ledger and compare against stored quantities."""
    mismatches = verify_ledger(product_id)
    if not mismatches:
        click.echo("PASS Ledger matches stored quantities")
        return

    for m in mismatches:
        click.echo(
            f"FAIL {m['product_id']} {m['product_name']}: "
            f"stored {m['stored_quantity']}, ledger {m['replayed_quantity']}"
        )
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(inventory_group)
