"""
Material Assignment Committer

Executes an allocation atomically: lock every batch, re-validate, deduct and
write one ``ItemAssignment`` per line. Any failure rolls back all of it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import select

from ...extensions import db
from ...models import BatchStatus, InventoryBatch, ItemAssignment, ReferenceType
from ...utils.quantity_utils import exceeds, normalize_quantity
from ..catalog_service import CatalogLookup
from ..errors import (
    BatchNotFoundError,
    BatchProductMismatchError,
    BranchMismatchError,
    InsufficientStockError,
    InvalidInputError,
    StaleBatchError,
)
from ..recipe_service import calculate_required_raw_quantity, resolve_for_virtual_product
from ._allocation import AllocationLine, AllocationProposal, build_proposal
from ._batch_store import coerce_quantity, list_available_batches, lock_batches, write_locked_batch
from ._transaction import ledger_transaction

logger = logging.getLogger(__name__)


@dataclass
class MaterialAssignmentResult:
    assignments: List[ItemAssignment] = field(default_factory=list)
    proposal: Optional[AllocationProposal] = None
    shortfall: float = 0.0

    @property
    def is_partial(self) -> bool:
        return self.shortfall > 0

    @property
    def total_assigned(self) -> float:
        return normalize_quantity(sum(float(a.quantity_deducted) for a in self.assignments))

    def as_dict(self) -> Dict[str, Any]:
        return {
            'assignments': [a.to_dict() for a in self.assignments],
            'proposal': self.proposal.as_dict() if self.proposal else None,
            'shortfall': self.shortfall,
            'total_assigned': self.total_assigned,
        }


def _normalize_lines(lines) -> List[tuple]:
    """Accept ``AllocationLine`` objects or ``{'batch_id', 'quantity'}`` dicts."""
    if not lines:
        raise InvalidInputError("At least one allocation line is required")

    normalized = []
    seen = set()
    for line in lines:
        if isinstance(line, AllocationLine):
            batch_id, quantity = line.batch_id, line.quantity
        elif isinstance(line, dict):
            batch_id, quantity = line.get('batch_id'), line.get('quantity')
        else:
            raise InvalidInputError(f"Unsupported allocation line: {line!r}")

        if batch_id is None:
            raise InvalidInputError("Allocation line is missing batch_id")
        try:
            batch_id = int(batch_id)
        except (TypeError, ValueError):
            raise InvalidInputError("batch_id must be an integer", batch_id=batch_id) from None
        quantity = coerce_quantity(quantity)
        if quantity <= 0:
            raise InvalidInputError(
                f"Quantity for batch {batch_id} must be greater than 0",
                batch_id=batch_id, quantity=quantity,
            )
        if batch_id in seen:
            raise InvalidInputError(f"Batch {batch_id} listed more than once", batch_id=batch_id)
        seen.add(batch_id)
        normalized.append((batch_id, quantity))
    return normalized


def commit_allocation(lines, reference_id, *, branch_id, reference_type=ReferenceType.SALES_ITEM,
                      product_id=None, created_by=None) -> List[ItemAssignment]:
    """
    Deduct each line from its batch at ``branch_id`` and record the assignments.

    Locks are taken in ascending batch id order. The whole commit is
    all-or-nothing; a batch that shrank since the proposal raises
    ``StaleBatchError`` and nothing is written.
    """
    if reference_id is None or not str(reference_id).strip():
        raise InvalidInputError("reference_id is required")
    if branch_id is None:
        raise InvalidInputError("branch_id is required")
    if reference_type not in ReferenceType.ALL:
        raise InvalidInputError(f"Unknown reference_type: {reference_type}", reference_type=reference_type)
    entries = _normalize_lines(lines)
    reference_id = str(reference_id).strip()

    assignments = []
    with ledger_transaction('commit_allocation'):
        locked = lock_batches(batch_id for batch_id, _ in entries)

        for batch_id, quantity in entries:
            batch = locked.get(batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)
            if batch.branch_id != branch_id:
                raise BranchMismatchError(batch_id, branch_id, batch.branch_id)
            if product_id is not None and batch.product_id != product_id:
                raise BatchProductMismatchError(batch_id, product_id, batch.product_id)

            available = float(batch.remaining_quantity)
            if batch.status != BatchStatus.IN_STOCK or exceeds(quantity, available):
                raise StaleBatchError(batch_id, quantity, available, status=batch.status)

            # Within tolerance of the remainder means take all of it
            deducted = min(quantity, available)
            left = normalize_quantity(available - deducted)
            write_locked_batch(
                batch, quantity,
                remaining_quantity=left,
                status=batch.status_for(left),
            )

            assignment = ItemAssignment(
                batch_id=batch.id,
                reference_type=reference_type,
                reference_id=reference_id,
                quantity_deducted=deducted,
                created_by=created_by,
            )
            db.session.add(assignment)
            assignments.append(assignment)

            logger.debug(
                "Staged deduction of %s from batch %s (%s -> %s, %s)",
                deducted, batch.id, available, batch.remaining_quantity, batch.status,
            )

    logger.info(
        "Committed allocation for %s:%s across %d batch(es)",
        reference_type, reference_id, len(assignments),
    )
    return assignments


def assign_material(reference_id, virtual_product_id, quantity, *, branch_id, lines=None,
                    allow_partial=None, created_by=None,
                    reference_type=ReferenceType.SALES_ITEM) -> MaterialAssignmentResult:
    """
    Recipe-driven material assignment for a sales item or production run.

    Without ``lines`` the FIFO proposal is committed. Operator-edited lines are
    re-validated against the recipe's raw product. A shortfall raises
    ``InsufficientStockError`` unless partial allocation is allowed, in which
    case the partial allocation is committed and reported.
    """
    if allow_partial is None:
        allow_partial = bool(current_app.config.get('ALLOW_PARTIAL_ALLOCATION', False))
    CatalogLookup.get_branch(branch_id)

    recipe = resolve_for_virtual_product(virtual_product_id)
    required = calculate_required_raw_quantity(recipe, quantity)
    raw_product_id = recipe.raw_product_id

    if lines is None:
        proposal = build_proposal(raw_product_id, required, branch_id=branch_id)
    else:
        proposal = _proposal_from_operator_lines(raw_product_id, required, branch_id, lines)
    proposal.recipe_id = recipe.id
    proposal.virtual_product_id = virtual_product_id
    proposal.virtual_quantity = normalize_quantity(quantity)

    if not proposal.is_sufficient:
        if not allow_partial or not proposal.lines:
            logger.info(
                "Material assignment for %s rejected: short by %s of product %s",
                reference_id, proposal.shortfall, raw_product_id,
            )
            raise InsufficientStockError(proposal)
        logger.warning(
            "Committing partial allocation for %s: short by %s of product %s",
            reference_id, proposal.shortfall, raw_product_id,
        )
    elif exceeds(proposal.total_quantity, required):
        raise InvalidInputError(
            f"Selected quantity {proposal.total_quantity} exceeds requirement {required}",
            required=required, selected=proposal.total_quantity,
        )

    assignments = commit_allocation(
        proposal.lines,
        reference_id,
        reference_type=reference_type,
        branch_id=branch_id,
        product_id=raw_product_id,
        created_by=created_by,
    )
    return MaterialAssignmentResult(
        assignments=assignments,
        proposal=proposal,
        shortfall=proposal.shortfall,
    )


def _proposal_from_operator_lines(raw_product_id, required, branch_id, lines) -> AllocationProposal:
    entries = _normalize_lines(lines)
    codes = {
        batch.id: batch.instance_code
        for batch in list_available_batches(raw_product_id, branch_id=branch_id)
    }
    proposal = AllocationProposal(product_id=raw_product_id, branch_id=branch_id, required_quantity=required)
    for batch_id, quantity in entries:
        code = codes.get(batch_id)
        if code is None:
            batch = db.session.get(InventoryBatch, batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)
            if batch.product_id != raw_product_id:
                raise BatchProductMismatchError(batch_id, raw_product_id, batch.product_id)
            if batch.branch_id != branch_id:
                raise BranchMismatchError(batch_id, branch_id, batch.branch_id)
            # Left for the committer to reject as stale under lock
            code = batch.instance_code
        proposal.lines.append(AllocationLine(batch_id, code, quantity))
    return proposal


def list_assignments(reference_id=None, batch_id=None) -> List[ItemAssignment]:
    stmt = select(ItemAssignment)
    if reference_id is not None:
        stmt = stmt.where(ItemAssignment.reference_id == str(reference_id))
    if batch_id is not None:
        stmt = stmt.where(ItemAssignment.batch_id == batch_id)
    stmt = stmt.order_by(ItemAssignment.created_at.asc(), ItemAssignment.id.asc())
    return list(db.session.execute(stmt).scalars())
