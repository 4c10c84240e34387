import logging

from sqlalchemy import func, select

from ...extensions import db
from ...models import BatchStatus, InventoryBatch, ItemAssignment, StockAdjustment, StockTransfer, TransferKind
from ...utils.quantity_utils import QUANTITY_TOLERANCE, is_effectively_zero, normalize_quantity

logger = logging.getLogger(__name__)


def _sum(column, *criteria) -> float:
    total = db.session.execute(select(func.coalesce(func.sum(column), 0.0)).where(*criteria)).scalar()
    return float(total or 0.0)


def expected_remaining_quantity(batch) -> float:
    """original - assignments - split outflows + physical adjustment deltas.

    Corrections are already folded into original_quantity.
    """
    assigned = _sum(ItemAssignment.quantity_deducted, ItemAssignment.batch_id == batch.id)
    split_out = _sum(
        StockTransfer.quantity,
        StockTransfer.batch_id == batch.id,
        StockTransfer.outcome == TransferKind.SPLIT_MOVE,
    )
    physical = _sum(
        StockAdjustment.delta,
        StockAdjustment.batch_id == batch.id,
        StockAdjustment.is_correction.is_(False),
    )
    return normalize_quantity(float(batch.original_quantity) - assigned - split_out + physical)


def validate_batch_ledger(batch_id):
    """Check one batch against its audit rows. Returns (is_valid, error, expected, actual)."""
    batch = db.session.get(InventoryBatch, batch_id, populate_existing=True)
    if not batch:
        return False, "Batch not found", 0, 0

    actual = float(batch.remaining_quantity)
    original = float(batch.original_quantity)
    expected = expected_remaining_quantity(batch)

    problems = []
    if abs(expected - actual) >= QUANTITY_TOLERANCE:
        problems.append(
            f"conservation mismatch: expected={expected}, actual={actual}, diff={abs(expected - actual):.3f}"
        )
    if actual < 0 and not is_effectively_zero(actual):
        problems.append(f"remaining {actual} is negative")
    if actual - original >= QUANTITY_TOLERANCE:
        problems.append(f"remaining {actual} exceeds original {original}")
    if original <= 0:
        problems.append(f"original {original} is not positive")

    drained = is_effectively_zero(actual)
    if batch.status == BatchStatus.DEPLETED and not drained:
        problems.append(f"status depleted with remaining {actual}")
    elif batch.status == BatchStatus.IN_STOCK and drained:
        problems.append("status in_stock with nothing remaining")
    elif batch.status == BatchStatus.TRANSFERRED and not drained:
        problems.append(f"status transferred with remaining {actual}")

    if problems:
        error_msg = f"Ledger error for batch {batch.id} ({batch.display_code}): " + "; ".join(problems)
        logger.error(error_msg)
        return False, error_msg, expected, actual

    return True, None, expected, actual


def validate_all_batches(product_id=None, branch_id=None):
    """Validate every batch; returns ``[(batch_id, error_message), ...]`` for failures."""
    stmt = select(InventoryBatch.id).order_by(InventoryBatch.id.asc())
    if product_id is not None:
        stmt = stmt.where(InventoryBatch.product_id == product_id)
    if branch_id is not None:
        stmt = stmt.where(InventoryBatch.branch_id == branch_id)

    failures = []
    for batch_id in db.session.execute(stmt).scalars().all():
        is_valid, error_msg, _, _ = validate_batch_ledger(batch_id)
        if not is_valid:
            failures.append((batch_id, error_msg))

    if failures:
        logger.error("Ledger validation found %d inconsistent batch(es)", len(failures))
    else:
        logger.info("Ledger validation passed")
    return failures
