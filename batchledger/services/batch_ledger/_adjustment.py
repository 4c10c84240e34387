"""
Adjustment Log

Manual out-of-band corrections with a mandatory reason. Every adjustment
leaves a permanent ``StockAdjustment`` row recording the before/after values.
"""

import logging
from typing import List

from sqlalchemy import select

from ...extensions import db
from ...models import BatchStatus, InventoryBatch, StockAdjustment
from ...utils.quantity_utils import QUANTITY_TOLERANCE, is_effectively_zero, normalize_quantity
from ..errors import BatchNotActiveError, InvalidInputError, InvariantViolationError
from ._batch_store import coerce_quantity, get_batch, lock_batch, write_locked_batch
from ._transaction import ledger_transaction

logger = logging.getLogger(__name__)


def adjust_batch(batch_id, delta, reason, user_id, *, is_correction=False) -> StockAdjustment:
    """
    Apply a signed ``delta`` to a batch's remaining quantity.

    A physical adjustment must keep remaining within [0, original]. A result
    outside those bounds is refused, never clamped, so the recorded delta is
    always the delta applied. A correction (``is_correction=True``) revises
    original_quantity by the same delta, for example when the receipt was
    entered wrong.
    """
    delta = coerce_quantity(delta, 'delta')
    if is_effectively_zero(delta):
        raise InvalidInputError("Adjustment delta must be non-zero", delta=delta)
    if reason is None or not str(reason).strip():
        raise InvalidInputError("A reason is required for every adjustment")
    if user_id is None:
        raise InvalidInputError("user_id is required for every adjustment")
    get_batch(batch_id)

    with ledger_transaction('adjust_batch'):
        batch = lock_batch(batch_id)
        if batch.status not in BatchStatus.ADJUSTABLE:
            raise BatchNotActiveError(batch.id, batch.status)

        quantity_before = float(batch.remaining_quantity)
        original_before = float(batch.original_quantity)
        quantity_after = normalize_quantity(quantity_before + delta)
        original_after = normalize_quantity(original_before + delta) if is_correction else original_before

        if quantity_after < 0:
            raise InvariantViolationError(
                f"Adjustment of {delta} would take batch {batch.id} below zero ({quantity_before})",
                batch_id=batch.id, delta=delta, remaining=quantity_before,
            )
        if original_after < QUANTITY_TOLERANCE:
            raise InvariantViolationError(
                f"Correction of {delta} would leave batch {batch.id} with no original quantity",
                batch_id=batch.id, delta=delta, original=original_before,
            )
        if quantity_after > original_after:
            raise InvariantViolationError(
                f"Adjustment of {delta} would take batch {batch.id} above its original quantity {original_after}",
                batch_id=batch.id, delta=delta, remaining=quantity_before, original=original_after,
            )

        write_locked_batch(
            batch, delta,
            original_quantity=original_after,
            remaining_quantity=quantity_after,
            status=batch.status_for(quantity_after),
        )

        adjustment = StockAdjustment(
            batch_id=batch.id,
            delta=delta,
            is_correction=bool(is_correction),
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            original_before=original_before,
            original_after=original_after,
            reason=str(reason).strip(),
            user_id=user_id,
        )
        db.session.add(adjustment)

    logger.info(
        "Adjusted batch %s by %s (%s): %s -> %s [%s] by user %s",
        batch.id, delta, 'correction' if is_correction else 'physical',
        quantity_before, adjustment.quantity_after, batch.status, user_id,
    )
    return adjustment


def list_adjustments(batch_id=None, branch_id=None) -> List[StockAdjustment]:
    stmt = select(StockAdjustment)
    if batch_id is not None:
        stmt = stmt.where(StockAdjustment.batch_id == batch_id)
    if branch_id is not None:
        stmt = stmt.join(InventoryBatch, StockAdjustment.batch_id == InventoryBatch.id).where(
            InventoryBatch.branch_id == branch_id
        )
    stmt = stmt.order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc())
    return list(db.session.execute(stmt).scalars())
