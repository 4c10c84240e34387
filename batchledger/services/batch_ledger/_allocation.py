"""
Allocation Proposer

Greedy FIFO proposal over the available batches of a raw product. Read-only:
no locks are taken and nothing is written. The committer re-validates every
line under lock, so a proposal is only ever a hint.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ...models import ProductType
from ...utils.quantity_utils import QUANTITY_TOLERANCE, is_effectively_zero, normalize_quantity
from ..catalog_service import CatalogLookup
from ..errors import InsufficientStockError, InvalidInputError
from ..recipe_service import calculate_required_raw_quantity, resolve_for_virtual_product
from ._batch_store import coerce_quantity, list_available_batches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationLine:
    batch_id: int
    instance_code: str
    quantity: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            'batch_id': self.batch_id,
            'instance_code': self.instance_code,
            'quantity': self.quantity,
        }


@dataclass
class AllocationProposal:
    product_id: int
    branch_id: int
    required_quantity: float
    lines: List[AllocationLine] = field(default_factory=list)
    recipe_id: Optional[int] = None
    virtual_product_id: Optional[int] = None
    virtual_quantity: Optional[float] = None

    @property
    def total_quantity(self) -> float:
        return normalize_quantity(sum(line.quantity for line in self.lines))

    @property
    def shortfall(self) -> float:
        return max(normalize_quantity(self.required_quantity - self.total_quantity), 0.0)

    @property
    def is_sufficient(self) -> bool:
        return self.shortfall < QUANTITY_TOLERANCE

    def as_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'branch_id': self.branch_id,
            'required_quantity': self.required_quantity,
            'total_quantity': self.total_quantity,
            'shortfall': self.shortfall,
            'is_sufficient': self.is_sufficient,
            'recipe_id': self.recipe_id,
            'virtual_product_id': self.virtual_product_id,
            'virtual_quantity': self.virtual_quantity,
            'lines': [line.as_dict() for line in self.lines],
        }


def build_proposal(product_id, required_quantity, branch_id) -> AllocationProposal:
    """Greedy FIFO walk. Never raises for a shortfall; see ``propose_allocation``."""
    proposal = AllocationProposal(
        product_id=product_id,
        branch_id=branch_id,
        required_quantity=required_quantity,
    )
    still_needed = required_quantity
    for batch in list_available_batches(product_id, branch_id=branch_id):
        if still_needed <= QUANTITY_TOLERANCE:
            break
        take = normalize_quantity(min(float(batch.remaining_quantity), still_needed))
        if is_effectively_zero(take):
            continue
        proposal.lines.append(AllocationLine(batch.id, batch.instance_code, take))
        still_needed = normalize_quantity(still_needed - take)
    return proposal


def propose_allocation(product_id, required_quantity, branch_id) -> AllocationProposal:
    """
    Suggest which batches at ``branch_id`` cover ``required_quantity`` of a
    raw product. Stock at other branches is never proposed.

    Raises ``InsufficientStockError`` carrying the partial proposal when the
    available stock runs out first.
    """
    required = coerce_quantity(required_quantity, 'required_quantity')
    if required <= 0:
        raise InvalidInputError("required_quantity must be greater than 0", required_quantity=required)
    CatalogLookup.get_product(product_id, ProductType.RAW_TRACKED, role="Raw product")
    CatalogLookup.get_branch(branch_id)

    proposal = build_proposal(product_id, required, branch_id=branch_id)
    if not proposal.is_sufficient:
        logger.info(
            "Proposal for product %s short by %s (need %s, found %s)",
            product_id, proposal.shortfall, required, proposal.total_quantity,
        )
        raise InsufficientStockError(proposal)
    return proposal


def propose_for_virtual_product(virtual_product_id, quantity, branch_id) -> AllocationProposal:
    """Resolve the recipe, size the raw requirement and propose FIFO batches."""
    recipe = resolve_for_virtual_product(virtual_product_id)
    required = calculate_required_raw_quantity(recipe, quantity)
    try:
        proposal = propose_allocation(recipe.raw_product_id, required, branch_id=branch_id)
    except InsufficientStockError as e:
        _attach_recipe(e.proposal, recipe, virtual_product_id, quantity)
        raise
    return _attach_recipe(proposal, recipe, virtual_product_id, quantity)


def _attach_recipe(proposal, recipe, virtual_product_id, quantity):
    proposal.recipe_id = recipe.id
    proposal.virtual_product_id = virtual_product_id
    proposal.virtual_quantity = normalize_quantity(quantity)
    return proposal
