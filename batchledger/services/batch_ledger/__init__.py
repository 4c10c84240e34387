"""
Batch Ledger Package

The only code allowed to change ``InventoryBatch.remaining_quantity``. Every
mutation (assignment, transfer, adjustment, cancellation) locks the batch rows
it touches in ascending id order and commits or rolls back as one unit.
"""

from ._adjustment import adjust_batch, list_adjustments
from ._allocation import (
    AllocationLine,
    AllocationProposal,
    propose_allocation,
    propose_for_virtual_product,
)
from ._assignment import (
    MaterialAssignmentResult,
    assign_material,
    commit_allocation,
    list_assignments,
)
from ._batch_store import (
    cancel_batch,
    get_batch,
    list_available_batches,
    list_batches,
    lock_batches,
    register_batch,
    update_batch,
)
from ._transfer import TransferOutcome, list_transfers, transfer_batch
from ._validation import expected_remaining_quantity, validate_all_batches, validate_batch_ledger

__all__ = [
    'register_batch',
    'get_batch',
    'list_batches',
    'list_available_batches',
    'lock_batches',
    'update_batch',
    'cancel_batch',
    'AllocationLine',
    'AllocationProposal',
    'propose_allocation',
    'propose_for_virtual_product',
    'MaterialAssignmentResult',
    'commit_allocation',
    'assign_material',
    'list_assignments',
    'TransferOutcome',
    'transfer_batch',
    'list_transfers',
    'adjust_batch',
    'list_adjustments',
    'expected_remaining_quantity',
    'validate_batch_ledger',
    'validate_all_batches',
]
