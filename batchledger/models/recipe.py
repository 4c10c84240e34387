from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils


class Recipe(db.Model):
    """Conversion rule from a manufactured virtual product to its raw material."""

    __tablename__ = 'recipe'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    virtual_product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False, index=True)
    raw_product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False, index=True)
    conversion_factor = db.Column(db.Float, nullable=False)
    wastage_margin = db.Column(db.Float, nullable=False, default=0.0)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)
    updated_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, onupdate=TimezoneUtils.utc_now)

    virtual_product = db.relationship('Product', foreign_keys=[virtual_product_id])
    raw_product = db.relationship('Product', foreign_keys=[raw_product_id])

    __table_args__ = (
        db.UniqueConstraint('virtual_product_id', 'raw_product_id', name='uq_recipe_virtual_raw'),
        db.CheckConstraint('conversion_factor > 0', name='check_conversion_factor_positive'),
        db.CheckConstraint('wastage_margin >= 0 AND wastage_margin <= 100', name='check_wastage_margin_range'),
    )

    @property
    def effective_factor(self):
        """Raw quantity consumed per virtual unit, wastage included."""
        return float(self.conversion_factor) * (1 + float(self.wastage_margin or 0) / 100)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'virtual_product_id': self.virtual_product_id,
            'raw_product_id': self.raw_product_id,
            'conversion_factor': float(self.conversion_factor),
            'wastage_margin': float(self.wastage_margin or 0),
        }

    def __repr__(self):
        return f'<Recipe {self.id}: {self.virtual_product_id} -> {self.raw_product_id} x{self.conversion_factor}>'
