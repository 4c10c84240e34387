"""
Transfer Manager

Moves stock between branches as either a full move (ownership changes in
place) or a split move (a new batch at the destination, the source keeps its
original quantity and loses remaining quantity).
"""

import logging
from dataclasses import dataclass
from typing import List

from flask import current_app
from sqlalchemy import or_, select

from ...extensions import db
from ...models import BatchStatus, InventoryBatch, StockTransfer, TransferKind
from ...utils.quantity_utils import exceeds, is_effectively_zero, normalize_quantity
from ..catalog_service import CatalogLookup
from ..errors import (
    BatchNotActiveError,
    DuplicateInstanceCodeError,
    InsufficientQuantityError,
    InvalidInputError,
    InvariantViolationError,
    SameBranchError,
)
from ._batch_store import coerce_quantity, get_batch, lock_batch, write_locked_batch
from ._codes import instance_code_taken, split_instance_code
from ._transaction import ledger_transaction

logger = logging.getLogger(__name__)


@dataclass
class TransferOutcome:
    kind: str
    transfer: StockTransfer
    source: InventoryBatch
    destination: InventoryBatch

    @property
    def is_split(self) -> bool:
        return self.kind == TransferKind.SPLIT_MOVE

    def as_dict(self):
        return {
            'kind': self.kind,
            'transfer': self.transfer.to_dict(),
            'source': self.source.to_dict(),
            'destination': self.destination.to_dict(),
        }


def transfer_batch(batch_id, to_branch_id, quantity=None, *, user_id=None, notes=None) -> TransferOutcome:
    """
    Transfer ``quantity`` (default: everything left) of a batch to another branch.
    """
    requested = None
    if quantity is not None:
        requested = coerce_quantity(quantity)
        if requested <= 0:
            raise InvalidInputError("Transfer quantity must be greater than 0", quantity=requested)

    CatalogLookup.get_branch(to_branch_id)
    snapshot = get_batch(batch_id)
    if snapshot.branch_id == to_branch_id:
        raise SameBranchError(
            f"Batch {batch_id} is already at branch {to_branch_id}",
            batch_id=batch_id, branch_id=to_branch_id,
        )

    with ledger_transaction('transfer_batch'):
        source = lock_batch(batch_id)
        # Ownership may have changed between the snapshot and the lock
        if source.branch_id == to_branch_id:
            raise SameBranchError(
                f"Batch {batch_id} is already at branch {to_branch_id}",
                batch_id=batch_id, branch_id=to_branch_id,
            )
        if source.status != BatchStatus.IN_STOCK:
            raise BatchNotActiveError(source.id, source.status)

        available = float(source.remaining_quantity)
        amount = available if requested is None else requested
        if exceeds(amount, available):
            raise InsufficientQuantityError(source.id, amount, available)
        amount = min(amount, available)
        if is_effectively_zero(amount):
            raise InvalidInputError(f"Batch {source.id} has nothing left to transfer", batch_id=source.id)

        from_branch_id = source.branch_id
        is_full = is_effectively_zero(available - amount)
        before_total = available

        if is_full and current_app.config.get('TRANSFER_FULL_MOVE_IN_PLACE', True):
            kind = TransferKind.FULL_MOVE
            destination = _move_in_place(source, to_branch_id)
            after_total = float(destination.remaining_quantity)
        else:
            kind = TransferKind.SPLIT_MOVE
            destination = _split_off(source, to_branch_id, amount, user_id, notes)
            after_total = float(source.remaining_quantity) + float(destination.remaining_quantity)

        if not is_effectively_zero(after_total - before_total):
            raise InvariantViolationError(
                f"Transfer of batch {source.id} changed total remaining from {before_total} to {after_total}",
                batch_id=source.id, before=before_total, after=after_total,
            )

        transfer = StockTransfer(
            batch_id=source.id,
            destination_batch_id=destination.id,
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            quantity=normalize_quantity(amount),
            outcome=kind,
            user_id=user_id,
            notes=notes,
        )
        db.session.add(transfer)

    logger.info(
        "Transferred %s of batch %s from branch %s to %s (%s, destination batch %s)",
        transfer.quantity, source.id, from_branch_id, to_branch_id, kind, destination.id,
    )
    return TransferOutcome(kind=kind, transfer=transfer, source=source, destination=destination)


def _move_in_place(source, to_branch_id) -> InventoryBatch:
    if instance_code_taken(to_branch_id, source.instance_code, exclude_batch_id=source.id):
        raise DuplicateInstanceCodeError(source.instance_code, to_branch_id)
    write_locked_batch(source, float(source.remaining_quantity), branch_id=to_branch_id)
    return source


def _split_off(source, to_branch_id, amount, user_id, notes) -> InventoryBatch:
    destination = InventoryBatch(
        product_id=source.product_id,
        branch_id=to_branch_id,
        instance_code=split_instance_code(source.instance_code, to_branch_id),
        original_quantity=amount,
        remaining_quantity=amount,
        status=BatchStatus.IN_STOCK,
        parent_batch_id=source.id,
        created_by=user_id,
        notes=notes,
        # FIFO age follows the stock
        created_at=source.created_at,
    )
    db.session.add(destination)

    left = normalize_quantity(float(source.remaining_quantity) - amount)
    write_locked_batch(
        source, amount,
        remaining_quantity=left,
        status=source.status_for(left, BatchStatus.TRANSFERRED),
    )
    db.session.flush()
    return destination


def list_transfers(branch_id=None, batch_id=None) -> List[StockTransfer]:
    stmt = select(StockTransfer)
    if branch_id is not None:
        stmt = stmt.where(or_(
            StockTransfer.from_branch_id == branch_id,
            StockTransfer.to_branch_id == branch_id,
        ))
    if batch_id is not None:
        stmt = stmt.where(or_(
            StockTransfer.batch_id == batch_id,
            StockTransfer.destination_batch_id == batch_id,
        ))
    stmt = stmt.order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc())
    return list(db.session.execute(stmt).scalars())
