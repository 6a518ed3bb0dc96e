# Overview: Flask CLI command groups for store bootstrap and maintenance.

# stockroom/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockroom (PowerShell: $env:FLASK_APP="stockroom").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system wipe --yes
#   Delete all rows (sales first, then purchases, products, suppliers) but keep the schema.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Purchase, Sale, SaleItem, Supplier


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo(
        f"PASS Schema ready: {db.session.query(Supplier).count()} suppliers, "
        f"{db.session.query(Product).count()} products, "
        f"{db.session.query(Sale).count()} sales"
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

    click.echo("PASS Database reset complete.")


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """
    Delete every row while keeping the schema.

    Order matters: sale items reference products with ON DELETE RESTRICT.
    """
    if not yes:
        click.confirm("WARN This will DELETE all data. Are you sure?", abort=True)

    for model in (SaleItem, Sale, Purchase, Product, Supplier):
        deleted = db.session.query(model).delete(synchronize_session=False)
        click.echo(f"DELETE  {model.__tablename__}: {deleted}")
    db.session.commit()
    click.echo("PASS Wipe complete.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
