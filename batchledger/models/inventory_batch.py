from ..extensions import db
from ..utils.quantity_utils import is_effectively_zero
from ..utils.timezone_utils import TimezoneUtils
from .mixins import BranchScopedMixin


class BatchStatus:
    IN_STOCK = 'in_stock'
    DEPLETED = 'depleted'
    TRANSFERRED = 'transferred'
    CANCELLED = 'cancelled'

    ALL = (IN_STOCK, DEPLETED, TRANSFERRED, CANCELLED)
    # Statuses an adjustment may still touch
    ADJUSTABLE = (IN_STOCK, DEPLETED)


class InventoryBatch(BranchScopedMixin, db.Model):
    """
    A physically distinct quantity of a raw-tracked product at one branch
    (a coil, pallet or instance). Rows are never deleted.
    """
    __tablename__ = 'inventory_batch'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False, index=True)
    instance_code = db.Column(db.String(100), nullable=False)

    original_quantity = db.Column(db.Float, nullable=False)
    remaining_quantity = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(16), nullable=False, default=BatchStatus.IN_STOCK, index=True)

    # Set on rows created by a split transfer
    parent_batch_id = db.Column(db.Integer, db.ForeignKey('inventory_batch.id'), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, onupdate=TimezoneUtils.utc_now)

    product = db.relationship('Product')
    branch = db.relationship('Branch')
    parent = db.relationship('InventoryBatch', remote_side=[id], backref='splits')

    __table_args__ = (
        db.UniqueConstraint('branch_id', 'instance_code', name='uq_batch_branch_instance_code'),
        db.CheckConstraint('remaining_quantity >= 0', name='check_batch_remaining_non_negative'),
        db.CheckConstraint('original_quantity > 0', name='check_batch_original_positive'),
        db.CheckConstraint('remaining_quantity <= original_quantity', name='check_batch_remaining_not_exceeds_original'),
        db.CheckConstraint(
            "status IN ('in_stock', 'depleted', 'transferred', 'cancelled')",
            name='check_batch_status',
        ),
        db.Index('ix_batch_fifo_lookup', 'product_id', 'branch_id', 'status', 'created_at'),
    )

    def __repr__(self):
        return f'<InventoryBatch {self.instance_code}: {self.remaining_quantity}/{self.original_quantity} @branch {self.branch_id}>'

    @property
    def display_code(self):
        return self.instance_code or f"BATCH-{self.id}"

    def status_for(self, remaining: float, drained_status: str = BatchStatus.DEPLETED) -> str:
        """Status this batch carries once it holds ``remaining``.

        Cancelled and transferred rows keep their status.
        """
        if self.status in (BatchStatus.CANCELLED, BatchStatus.TRANSFERRED):
            return self.status
        if is_effectively_zero(remaining):
            return drained_status
        return BatchStatus.IN_STOCK

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'branch_id': self.branch_id,
            'instance_code': self.instance_code,
            'original_quantity': float(self.original_quantity),
            'remaining_quantity': float(self.remaining_quantity),
            'status': self.status,
            'parent_batch_id': self.parent_batch_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
