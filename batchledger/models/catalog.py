"""Catalog tables owned by the wider platform.

The ledger only reads these rows: existence and product type checks.
"""

from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils


class ProductType:
    STANDARD = 'standard'
    COMPOUND = 'compound'
    RAW_TRACKED = 'raw_tracked'
    MANUFACTURED_VIRTUAL = 'manufactured_virtual'

    ALL = (STANDARD, COMPOUND, RAW_TRACKED, MANUFACTURED_VIRTUAL)


class Branch(db.Model):
    __tablename__ = 'branch'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)

    def __repr__(self):
        return f'<Branch {self.code}>'


class Product(db.Model):
    __tablename__ = 'product'

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(32), nullable=False, default=ProductType.STANDARD)
    base_unit = db.Column(db.String(32), nullable=False, default='unit')
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)

    __table_args__ = (
        db.CheckConstraint(
            "type IN ('standard', 'compound', 'raw_tracked', 'manufactured_virtual')",
            name='check_product_type',
        ),
    )

    def __repr__(self):
        return f'<Product {self.sku} ({self.type})>'
