# Overview: Flask CLI command group for bootstrap and maintenance.

# backend/erp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask erp <command> [options]
#
# - python -m flask erp init-db
#   Create all tables directly (dev/test). Use `flask db upgrade` for migrations.
# - python -m flask erp normalize-statuses [--dry-run]
#   Rewrite legacy production order statuses ("in-progress") to "in_progress".
# - python -m flask erp seed-demo
#   Insert a small demo data set (items, BOM, supplier, customer).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import InventoryItem
from .services import build_ledgers
from .services.production_service import normalize_persisted_statuses


@click.group('erp')
def erp_group():
    """ERP bootstrap and maintenance commands."""


@erp_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@erp_group.command('normalize-statuses')
@click.option('--dry-run', is_flag=True, help='Only report how many rows would change')
@with_appcontext
def normalize_statuses(dry_run):
    """Normalize legacy production order status spellings."""
    count = normalize_persisted_statuses(dry_run=dry_run)
    if dry_run:
        click.echo(f"DRY RUN {count} production order(s) carry a legacy status")
    else:
        click.echo(f"PASS Normalized {count} production order(s)")


@erp_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo master data; skipped when inventory already has items."""
    from flask import current_app

    if db.session.query(InventoryItem).count():
        click.echo("WARN  Inventory is not empty, skipping demo seed")
        return

    ledgers = build_ledgers(current_app.config)
    inventory = ledgers.inventory

    wood = inventory.create_item({
        "name": "Oak Plank",
        "category": "Raw Materials",
        "unit_of_measure": "pieces",
        "purchase_cost_cents": 1200,
        "selling_price_cents": 0,
        "current_stock": 40,
        "reorder_level": 10,
        "sku": "RM-OAK-01",
    })
    screws = inventory.create_item({
        "name": "Wood Screw",
        "category": "Raw Materials",
        "unit_of_measure": "units",
        "purchase_cost_cents": 5,
        "current_stock": 500,
        "reorder_level": 100,
        "sku": "RM-SCR-01",
    })
    table = inventory.create_item({
        "name": "Oak Side Table",
        "category": "Finished Goods",
        "unit_of_measure": "pieces",
        "purchase_cost_cents": 0,
        "selling_price_cents": 14900,
        "reorder_level": 2,
        "sku": "FG-TBL-01",
    })
    click.echo(f"PASS Created items: {wood.name}, {screws.name}, {table.name}")

    bom = ledgers.boms.create_bom(
        "Oak Side Table",
        "Four legs, one top",
        [
            {"item_id": wood.id, "quantity": 3},
            {"item_id": screws.id, "quantity": 16},
        ],
        finished_item_id=table.id,
    )
    click.echo(f"PASS Created BOM #{bom.id} for {bom.product_name}")

    supplier = ledgers.procurement.create_supplier({
        "name": "Northwood Timber",
        "telephone": "+1 555 0100",
        "payment_terms": "Net 30",
    })
    customer = ledgers.sales.create_customer({
        "name": "Walk-in Customer",
    })
    click.echo(f"PASS Created supplier '{supplier.name}' and customer '{customer.name}'")
    click.echo("DONE Demo data seeded")


def register_commands(app):
    app.cli.add_command(erp_group)
