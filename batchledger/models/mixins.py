from ..extensions import db


class BranchScopedMixin:
    """Rows owned by exactly one branch at a time."""

    branch_id = db.Column(db.Integer, db.ForeignKey('branch.id'), nullable=False, index=True)
