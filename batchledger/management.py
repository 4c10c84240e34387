"""
Management commands for database setup and ledger maintenance
"""
import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Product, ProductType

DEMO_BRANCHES = [
    {'code': 'MAIN', 'name': 'Main Warehouse'},
    {'code': 'NORTH', 'name': 'North Branch'},
]

DEMO_PRODUCTS = [
    {'sku': 'STEEL-COIL-05', 'name': 'Steel Coil 0.5mm', 'type': ProductType.RAW_TRACKED, 'base_unit': 'kg'},
    {'sku': 'ROOF-SHEET-05', 'name': 'Roofing Sheet 0.5mm', 'type': ProductType.MANUFACTURED_VIRTUAL, 'base_unit': 'm'},
]


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables (local development; use `flask db upgrade` elsewhere)"""
    try:
        db.create_all()
        print("✅ Database tables created/verified")
    except Exception as e:
        print(f'❌ Error creating tables: {str(e)}')
        raise


@click.command('seed-catalog')
@with_appcontext
def seed_catalog_command():
    """Seed demo branches and products (idempotent)"""
    try:
        created = 0
        for row in DEMO_BRANCHES:
            if Branch.query.filter_by(code=row['code']).first():
                continue
            db.session.add(Branch(**row))
            created += 1

        for row in DEMO_PRODUCTS:
            if Product.query.filter_by(sku=row['sku']).first():
                continue
            db.session.add(Product(**row))
            created += 1

        db.session.commit()
        print(f"✅ Catalog seeded ({created} new rows)")
    except Exception as e:
        db.session.rollback()
        print(f'❌ Error seeding catalog: {str(e)}')
        raise


@click.command('verify-ledger')
@click.option('--product-id', type=int, help='Only check batches of this product')
@click.option('--branch-id', type=int, help='Only check batches at this branch')
@with_appcontext
def verify_ledger_command(product_id, branch_id):
    """Check conservation and bounds for every batch"""
    from .services.batch_ledger import validate_all_batches

    failures = validate_all_batches(product_id=product_id, branch_id=branch_id)
    if not failures:
        print("✅ Ledger is consistent")
        return

    for batch_id, error_msg in failures:
        print(f"❌ Batch {batch_id}: {error_msg}")
    print(f"❌ {len(failures)} inconsistent batch(es)")
    sys.exit(1)


def register_commands(app):
    """Register CLI commands"""
    app.cli.add_command(init_db_command)
    app.cli.add_command(seed_catalog_command)
    app.cli.add_command(verify_ledger_command)
