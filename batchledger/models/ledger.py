"""Append-only audit rows written against inventory batches."""

from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils


class ReferenceType:
    SALES_ITEM = 'sales_item'
    PRODUCTION = 'production'

    ALL = (SALES_ITEM, PRODUCTION)


class TransferKind:
    FULL_MOVE = 'full_move'
    SPLIT_MOVE = 'split_move'

    ALL = (FULL_MOVE, SPLIT_MOVE)


class ItemAssignment(db.Model):
    """A deduction from one batch tied to a sales item or production run."""

    __tablename__ = 'item_assignment'

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('inventory_batch.id'), nullable=False, index=True)
    reference_type = db.Column(db.String(32), nullable=False, default=ReferenceType.SALES_ITEM)
    reference_id = db.Column(db.String(64), nullable=False, index=True)
    quantity_deducted = db.Column(db.Float, nullable=False)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, nullable=False)

    batch = db.relationship('InventoryBatch', backref=db.backref('assignments', lazy='dynamic'))

    __table_args__ = (
        db.CheckConstraint('quantity_deducted > 0', name='check_assignment_quantity_positive'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'batch_id': self.batch_id,
            'reference_type': self.reference_type,
            'reference_id': self.reference_id,
            'quantity_deducted': float(self.quantity_deducted),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<ItemAssignment {self.id}: batch {self.batch_id} -{self.quantity_deducted} for {self.reference_type}:{self.reference_id}>'


class StockTransfer(db.Model):
    __tablename__ = 'stock_transfer'

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('inventory_batch.id'), nullable=False, index=True)
    # Same as batch_id for a full move; the new row for a split
    destination_batch_id = db.Column(db.Integer, db.ForeignKey('inventory_batch.id'), nullable=False, index=True)
    from_branch_id = db.Column(db.Integer, db.ForeignKey('branch.id'), nullable=False, index=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey('branch.id'), nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False)
    outcome = db.Column(db.String(16), nullable=False)
    user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, nullable=False)

    batch = db.relationship('InventoryBatch', foreign_keys=[batch_id])
    destination_batch = db.relationship('InventoryBatch', foreign_keys=[destination_batch_id])

    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='check_transfer_quantity_positive'),
        db.CheckConstraint('from_branch_id <> to_branch_id', name='check_transfer_distinct_branches'),
        db.CheckConstraint("outcome IN ('full_move', 'split_move')", name='check_transfer_outcome'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'batch_id': self.batch_id,
            'destination_batch_id': self.destination_batch_id,
            'from_branch_id': self.from_branch_id,
            'to_branch_id': self.to_branch_id,
            'quantity': float(self.quantity),
            'outcome': self.outcome,
            'user_id': self.user_id,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<StockTransfer {self.id}: {self.outcome} {self.quantity} {self.from_branch_id}->{self.to_branch_id}>'


class StockAdjustment(db.Model):
    """Manual out-of-band correction. Never edited or deleted."""

    __tablename__ = 'stock_adjustment'

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('inventory_batch.id'), nullable=False, index=True)
    delta = db.Column(db.Float, nullable=False)
    # Corrections revise original_quantity as well as remaining_quantity
    is_correction = db.Column(db.Boolean, nullable=False, default=False)
    quantity_before = db.Column(db.Float, nullable=False)
    quantity_after = db.Column(db.Float, nullable=False)
    original_before = db.Column(db.Float, nullable=False)
    original_after = db.Column(db.Float, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, nullable=False)

    batch = db.relationship('InventoryBatch', backref=db.backref('adjustments', lazy='dynamic'))

    __table_args__ = (
        db.CheckConstraint('quantity_after >= 0', name='check_adjustment_quantity_after_non_negative'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'batch_id': self.batch_id,
            'delta': float(self.delta),
            'is_correction': bool(self.is_correction),
            'quantity_before': float(self.quantity_before),
            'quantity_after': float(self.quantity_after),
            'original_before': float(self.original_before),
            'original_after': float(self.original_after),
            'reason': self.reason,
            'user_id': self.user_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<StockAdjustment {self.id}: batch {self.batch_id} {self.delta:+}>'
