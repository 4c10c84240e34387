"""
Pytest configuration and shared fixtures for the batch ledger tests.
"""
import os
import tempfile
from types import SimpleNamespace

import pytest

from batchledger import create_app
from batchledger.extensions import db
from batchledger.models import Branch, Product, ProductType


@pytest.fixture(scope='function')
def app():
    """Create and configure a new app instance for each test."""
    db_fd, db_path = tempfile.mkstemp()

    app = create_app({
        'TESTING': True,
        'DATABASE_URL': f'sqlite:///{db_path}',
        'SECRET_KEY': 'test-secret-key',
        'ALLOW_PARTIAL_ALLOCATION': False,
        'TRANSFER_FULL_MOVE_IN_PLACE': True,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()

    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def catalog(app):
    """Two branches plus one product of each type. Yields plain ids."""
    with app.app_context():
        main = Branch(name='Main Warehouse', code='MAIN')
        north = Branch(name='North Branch', code='NORTH')
        coil = Product(sku='COIL-05', name='Steel Coil 0.5mm', type=ProductType.RAW_TRACKED, base_unit='kg')
        wire = Product(sku='WIRE 2mm', name='Wire 2mm', type=ProductType.RAW_TRACKED, base_unit='m')
        sheet = Product(
            sku='SHEET-05', name='Roofing Sheet', type=ProductType.MANUFACTURED_VIRTUAL, base_unit='m'
        )
        screws = Product(sku='SCREW-BOX', name='Screws', type=ProductType.STANDARD)
        db.session.add_all([main, north, coil, wire, sheet, screws])
        db.session.commit()

        return SimpleNamespace(
            main=main.id,
            north=north.id,
            coil=coil.id,
            wire=wire.id,
            sheet=sheet.id,
            screws=screws.id,
        )
