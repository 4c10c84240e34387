"""Models package - imports all models for the application"""
from ..extensions import db
from .mixins import BranchScopedMixin

# Import in dependency order for PostgreSQL table creation
from .catalog import Branch, Product, ProductType
from .recipe import Recipe
from .inventory_batch import BatchStatus, InventoryBatch
from .ledger import (
    ItemAssignment,
    ReferenceType,
    StockAdjustment,
    StockTransfer,
    TransferKind,
)

__all__ = [
    'db',
    'BranchScopedMixin',
    'Branch',
    'Product',
    'ProductType',
    'Recipe',
    'BatchStatus',
    'InventoryBatch',
    'ItemAssignment',
    'ReferenceType',
    'StockAdjustment',
    'StockTransfer',
    'TransferKind',
]
