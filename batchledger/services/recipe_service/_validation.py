"""
Recipe Validation Operations

Field-level checks plus product type checks against the catalog.
"""

import logging

from ...models import ProductType
from ..catalog_service import CatalogLookup
from ..errors import InvalidInputError

logger = logging.getLogger(__name__)


def validate_recipe_fields(name=None, conversion_factor=None, wastage_margin=None, *, partial=False):
    """
    Normalize and validate the scalar recipe fields.

    With ``partial=True`` (updates) missing fields are skipped.
    Returns a dict of the normalized values that were supplied.
    """
    cleaned = {}

    if name is not None or not partial:
        if name is None or not str(name).strip():
            raise InvalidInputError("Recipe name is required")
        cleaned['name'] = str(name).strip()

    if conversion_factor is not None or not partial:
        factor = _coerce_number(conversion_factor, 'conversion_factor')
        if factor <= 0:
            raise InvalidInputError("conversion_factor must be greater than 0", conversion_factor=factor)
        cleaned['conversion_factor'] = factor

    if wastage_margin is not None:
        margin = _coerce_number(wastage_margin, 'wastage_margin')
        if margin < 0 or margin > 100:
            raise InvalidInputError("wastage_margin must be between 0 and 100", wastage_margin=margin)
        cleaned['wastage_margin'] = margin
    elif not partial:
        cleaned['wastage_margin'] = 0.0

    return cleaned


def validate_recipe_products(virtual_product_id, raw_product_id):
    """Both products must exist and carry the right type."""
    if virtual_product_id is not None and virtual_product_id == raw_product_id:
        raise InvalidInputError("Virtual and raw product must differ", product_id=virtual_product_id)

    virtual_product = CatalogLookup.get_product(
        virtual_product_id, ProductType.MANUFACTURED_VIRTUAL, role="Virtual product"
    )
    raw_product = CatalogLookup.get_product(
        raw_product_id, ProductType.RAW_TRACKED, role="Raw product"
    )
    return virtual_product, raw_product


def _coerce_number(value, field_name):
    if value is None or isinstance(value, bool):
        raise InvalidInputError(f"{field_name} is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field_name} must be numeric", **{field_name: value}) from None
    if number != number:
        raise InvalidInputError(f"{field_name} must be numeric", **{field_name: value})
    return number
