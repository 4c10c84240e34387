"""
Ledger error taxonomy.

Every failure surfaced by the recipe registry and the batch ledger is a
``BatchLedgerError`` carrying a stable ``code``. Validation failures
(``InvalidInputError``, ``NotFoundError``, ``ConflictError``) are raised before
any write transaction opens. ``StaleBatchError`` is raised inside the
transaction after a full rollback and is safe to retry after re-proposing.
``InvariantViolationError`` means the ledger itself is inconsistent and must
reach an operator.
"""

from __future__ import annotations

from typing import Any, Dict


class BatchLedgerError(Exception):
    code = "ledger_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        payload.update(self.details)
        return payload


# --- Not found ---

class NotFoundError(BatchLedgerError):
    code = "not_found"


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"

    def __init__(self, product_id, role: str = "Product"):
        super().__init__(f"{role} not found: {product_id}", product_id=product_id)
        self.product_id = product_id


class BranchNotFoundError(NotFoundError):
    code = "branch_not_found"

    def __init__(self, branch_id):
        super().__init__(f"Branch not found: {branch_id}", branch_id=branch_id)
        self.branch_id = branch_id


class RecipeNotFoundError(NotFoundError):
    code = "recipe_not_found"


class BatchNotFoundError(NotFoundError):
    code = "batch_not_found"

    def __init__(self, batch_id):
        super().__init__(f"Inventory batch not found: {batch_id}", batch_id=batch_id)
        self.batch_id = batch_id


# --- Invalid input ---

class InvalidInputError(BatchLedgerError, ValueError):
    code = "invalid_input"


class InvalidProductTypeError(InvalidInputError):
    code = "invalid_product_type"

    def __init__(self, product_id, actual_type: str, expected_type: str):
        super().__init__(
            f"Product {product_id} is {actual_type!r}; expected {expected_type!r}",
            product_id=product_id,
            actual_type=actual_type,
            expected_type=expected_type,
        )


class InsufficientQuantityError(InvalidInputError):
    code = "insufficient_quantity"

    def __init__(self, batch_id, requested: float, available: float):
        super().__init__(
            f"Batch {batch_id} holds {available}; cannot move {requested}",
            batch_id=batch_id,
            requested=requested,
            available=available,
        )


# --- Conflicts ---

class ConflictError(BatchLedgerError):
    code = "conflict"


class DuplicateRecipeError(ConflictError):
    code = "duplicate_recipe"


class DuplicateInstanceCodeError(ConflictError):
    code = "duplicate_instance_code"

    def __init__(self, instance_code: str, branch_id):
        super().__init__(
            f"Instance code {instance_code!r} already exists in branch {branch_id}",
            instance_code=instance_code,
            branch_id=branch_id,
        )


class SameBranchError(ConflictError):
    code = "same_branch"


class BranchMismatchError(ConflictError):
    code = "branch_mismatch"

    def __init__(self, batch_id, expected_branch_id, actual_branch_id):
        super().__init__(
            f"Batch {batch_id} belongs to branch {actual_branch_id}, not {expected_branch_id}",
            batch_id=batch_id,
            expected_branch_id=expected_branch_id,
            actual_branch_id=actual_branch_id,
        )


class BatchProductMismatchError(ConflictError):
    code = "batch_product_mismatch"

    def __init__(self, batch_id, expected_product_id, actual_product_id):
        super().__init__(
            f"Batch {batch_id} holds product {actual_product_id}, not {expected_product_id}",
            batch_id=batch_id,
            expected_product_id=expected_product_id,
            actual_product_id=actual_product_id,
        )


class BatchNotActiveError(ConflictError):
    code = "batch_not_active"

    def __init__(self, batch_id, status: str):
        super().__init__(f"Batch {batch_id} is {status}", batch_id=batch_id, status=status)


class BatchInUseError(ConflictError):
    code = "batch_in_use"


# --- Stock availability ---

class InsufficientStockError(BatchLedgerError):
    """Proposal could not cover the requirement. Carries the partial proposal."""

    code = "insufficient_stock"

    def __init__(self, proposal, message: str | None = None):
        shortfall = proposal.shortfall
        super().__init__(
            message or (
                f"Insufficient stock for product {proposal.product_id}: "
                f"need {proposal.required_quantity}, short by {shortfall}"
            ),
            product_id=proposal.product_id,
            required=proposal.required_quantity,
            available=proposal.total_quantity,
            shortfall=shortfall,
        )
        self.proposal = proposal
        self.shortfall = shortfall
        self.required = proposal.required_quantity
        self.available = proposal.total_quantity


class StaleBatchError(BatchLedgerError):
    """Remaining quantity shrank between proposal and commit."""

    code = "stale_batch"

    def __init__(self, batch_id, requested: float, available: float, status: str | None = None):
        super().__init__(
            f"Batch {batch_id} no longer covers {requested} (remaining {available}, status {status})",
            batch_id=batch_id,
            requested=requested,
            available=available,
            status=status,
        )
        self.batch_id = batch_id
        self.requested = requested
        self.available = available


class InvariantViolationError(BatchLedgerError):
    code = "invariant_violation"
