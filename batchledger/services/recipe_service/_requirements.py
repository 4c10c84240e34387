from ...utils.quantity_utils import normalize_quantity
from ..errors import InvalidInputError


def calculate_required_raw_quantity(recipe, quantity) -> float:
    """Raw material needed for ``quantity`` units of the recipe's virtual product.

    quantity x conversion_factor x (1 + wastage_margin / 100), at ledger precision.
    """
    try:
        requested = float(quantity)
    except (TypeError, ValueError):
        raise InvalidInputError("Quantity must be numeric", quantity=quantity) from None
    if requested <= 0:
        raise InvalidInputError("Quantity must be greater than 0", quantity=requested)
    return normalize_quantity(requested * recipe.effective_factor)
