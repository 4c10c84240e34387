"""
Batch Store

Authoritative batch rows: registration, reads, FIFO availability and row
locking, descriptive edits and the guarded write every quantity or status
change goes through. Quantity mutations live in the assignment, transfer and
adjustment modules; each takes its locks through ``lock_batches``.
"""

import logging
from typing import Dict, Iterable, List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value

from ...extensions import db
from ...models import BatchStatus, InventoryBatch, ProductType, StockAdjustment
from ...utils.quantity_utils import QUANTITY_TOLERANCE, normalize_quantity
from ...utils.timezone_utils import TimezoneUtils
from ..catalog_service import CatalogLookup
from ..errors import (
    BatchInUseError,
    BatchNotActiveError,
    BatchNotFoundError,
    DuplicateInstanceCodeError,
    InvalidInputError,
    StaleBatchError,
)
from ._codes import instance_code_taken, next_instance_code
from ._transaction import ledger_transaction

logger = logging.getLogger(__name__)

EDITABLE_BATCH_FIELDS = ('instance_code', 'notes')


def coerce_quantity(value, field_name='quantity') -> float:
    try:
        return normalize_quantity(value)
    except ValueError as e:
        raise InvalidInputError(str(e), **{field_name: value}) from None


def register_batch(product_id, branch_id, original_quantity, instance_code=None,
                   created_by=None, notes=None, received_at=None) -> InventoryBatch:
    """
    Register a new physical batch with original = remaining.

    ``received_at`` backdates ``created_at`` for opening stock so the FIFO
    position matches the real receipt date.
    """
    product = CatalogLookup.get_product(product_id, ProductType.RAW_TRACKED, role="Raw product")
    CatalogLookup.get_branch(branch_id)

    quantity = coerce_quantity(original_quantity, 'original_quantity')
    if quantity <= 0:
        raise InvalidInputError("original_quantity must be greater than 0", original_quantity=quantity)

    if instance_code is not None:
        instance_code = str(instance_code).strip()
        if not instance_code:
            raise InvalidInputError("instance_code cannot be blank")
        if instance_code_taken(branch_id, instance_code):
            raise DuplicateInstanceCodeError(instance_code, branch_id)
    else:
        instance_code = next_instance_code(product, branch_id)

    batch = InventoryBatch(
        product_id=product.id,
        branch_id=branch_id,
        instance_code=instance_code,
        original_quantity=quantity,
        remaining_quantity=quantity,
        status=BatchStatus.IN_STOCK,
        created_by=created_by,
        notes=notes,
    )
    if received_at is not None:
        batch.created_at = TimezoneUtils.ensure_utc(received_at)

    try:
        with ledger_transaction('register_batch'):
            db.session.add(batch)
    except IntegrityError:
        # Lost a race for the same code
        raise DuplicateInstanceCodeError(instance_code, branch_id) from None

    logger.info(
        "Registered batch %s (%s): %s of product %s at branch %s",
        batch.id, batch.instance_code, quantity, product.id, branch_id,
    )
    return batch


def get_batch(batch_id) -> InventoryBatch:
    batch = db.session.get(InventoryBatch, batch_id, populate_existing=True) if batch_id is not None else None
    if batch is None:
        raise BatchNotFoundError(batch_id)
    return batch


def list_batches(product_id=None, branch_id=None, status=None) -> List[InventoryBatch]:
    stmt = select(InventoryBatch)
    if product_id is not None:
        stmt = stmt.where(InventoryBatch.product_id == product_id)
    if branch_id is not None:
        stmt = stmt.where(InventoryBatch.branch_id == branch_id)
    if status is not None:
        statuses = (status,) if isinstance(status, str) else tuple(status)
        unknown = set(statuses) - set(BatchStatus.ALL)
        if unknown:
            raise InvalidInputError(f"Unknown batch status: {', '.join(sorted(unknown))}")
        stmt = stmt.where(InventoryBatch.status.in_(statuses))
    stmt = stmt.order_by(InventoryBatch.created_at.asc(), InventoryBatch.id.asc())
    return list(db.session.execute(stmt.execution_options(populate_existing=True)).scalars())


def list_available_batches(product_id, branch_id=None) -> List[InventoryBatch]:
    """In-stock batches with quantity left, oldest first (FIFO), ties by id."""
    stmt = (
        select(InventoryBatch)
        .where(
            InventoryBatch.product_id == product_id,
            InventoryBatch.status == BatchStatus.IN_STOCK,
            InventoryBatch.remaining_quantity >= QUANTITY_TOLERANCE,
        )
        .order_by(InventoryBatch.created_at.asc(), InventoryBatch.id.asc())
        .execution_options(populate_existing=True)
    )
    if branch_id is not None:
        stmt = stmt.where(InventoryBatch.branch_id == branch_id)
    return list(db.session.execute(stmt).scalars())


def lock_batches(batch_ids: Iterable[int]) -> Dict[int, InventoryBatch]:
    """
    Take exclusive row locks on the given batches, ascending id order.

    Identity-mapped rows are refreshed so the caller reads the committed
    remaining quantity. Missing ids are simply absent from the result.
    """
    ids = sorted({int(batch_id) for batch_id in batch_ids})
    if not ids:
        return {}
    stmt = (
        select(InventoryBatch)
        .where(InventoryBatch.id.in_(ids))
        .order_by(InventoryBatch.id.asc())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {batch.id: batch for batch in db.session.execute(stmt).scalars()}


def lock_batch(batch_id) -> InventoryBatch:
    batch = lock_batches([batch_id]).get(int(batch_id))
    if batch is None:
        raise BatchNotFoundError(batch_id)
    return batch


def write_locked_batch(batch: InventoryBatch, requested, **values) -> InventoryBatch:
    """
    Write ``values`` to a batch read under ``lock_batches``.

    The UPDATE only matches while the row still holds the quantities, status
    and branch that were read. Engines without row locks (SQLite ignores
    ``FOR UPDATE``) let a concurrent writer slip in between read and write;
    that writer's change makes the guard miss and raises ``StaleBatchError``.
    """
    result = db.session.execute(
        update(InventoryBatch)
        .where(
            InventoryBatch.id == batch.id,
            InventoryBatch.remaining_quantity == batch.remaining_quantity,
            InventoryBatch.original_quantity == batch.original_quantity,
            InventoryBatch.status == batch.status,
            InventoryBatch.branch_id == batch.branch_id,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = db.session.execute(
            select(InventoryBatch.remaining_quantity, InventoryBatch.status)
            .where(InventoryBatch.id == batch.id)
        ).first()
        available, status = current if current is not None else (0.0, None)
        logger.info("Batch %s changed under a concurrent writer; rejecting write", batch.id)
        raise StaleBatchError(
            batch.id,
            requested,
            float(available),
            status=status,
        )

    for key, value in values.items():
        set_committed_value(batch, key, value)
    db.session.expire(batch, ['updated_at'])
    return batch


def update_batch(batch_id, **fields) -> InventoryBatch:
    """
    Edit a batch's descriptive fields: ``instance_code`` and ``notes``.

    Quantities only move through assignments, transfers and adjustments, so
    quantity or status fields are refused here.
    """
    unknown = set(fields) - set(EDITABLE_BATCH_FIELDS)
    if unknown:
        raise InvalidInputError(
            f"Cannot edit batch field(s): {', '.join(sorted(unknown))}; "
            "use an adjustment to change quantities",
            fields=sorted(unknown),
        )
    if not fields:
        raise InvalidInputError("Nothing to update")

    instance_code = fields.get('instance_code')
    if 'instance_code' in fields:
        instance_code = str(instance_code).strip() if instance_code is not None else ''
        if not instance_code:
            raise InvalidInputError("instance_code cannot be blank")
    snapshot = get_batch(batch_id)

    try:
        with ledger_transaction('update_batch'):
            batch = lock_batch(batch_id)
            if 'instance_code' in fields and instance_code != batch.instance_code:
                if instance_code_taken(batch.branch_id, instance_code, exclude_batch_id=batch.id):
                    raise DuplicateInstanceCodeError(instance_code, batch.branch_id)
                batch.instance_code = instance_code
            if 'notes' in fields:
                batch.notes = fields['notes']
    except IntegrityError:
        raise DuplicateInstanceCodeError(instance_code, snapshot.branch_id) from None

    logger.info("Updated batch %s: %s", batch.id, ', '.join(sorted(fields)))
    return batch


def cancel_batch(batch_id, user_id, reason) -> InventoryBatch:
    """Retire a batch that was registered by mistake. Rows are never deleted."""
    if not reason or not str(reason).strip():
        raise InvalidInputError("A reason is required to cancel a batch")
    if user_id is None:
        raise InvalidInputError("user_id is required to cancel a batch")
    get_batch(batch_id)

    with ledger_transaction('cancel_batch'):
        batch = lock_batch(batch_id)
        if batch.status == BatchStatus.CANCELLED:
            raise BatchNotActiveError(batch.id, batch.status)
        if batch.status == BatchStatus.TRANSFERRED:
            raise BatchNotActiveError(batch.id, batch.status)
        if batch.assignments.count() > 0:
            raise BatchInUseError(
                f"Batch {batch.id} has assignments and cannot be cancelled",
                batch_id=batch.id,
            )

        remaining = float(batch.remaining_quantity)
        original = float(batch.original_quantity)
        write_locked_batch(batch, remaining, status=BatchStatus.CANCELLED)
        db.session.add(StockAdjustment(
            batch_id=batch.id,
            delta=0.0,
            is_correction=False,
            quantity_before=remaining,
            quantity_after=remaining,
            original_before=original,
            original_after=original,
            reason=f"Cancelled: {str(reason).strip()}",
            user_id=user_id,
        ))

    logger.info("Cancelled batch %s by user %s: %s", batch.id, user_id, reason)
    return batch
