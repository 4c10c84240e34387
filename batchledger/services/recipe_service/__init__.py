"""
Recipe Service Package

Canonical entry point for recipe (conversion rule) operations. Other modules
import from here, never from the underscore helpers.
"""

from ._core import (
    create_recipe,
    delete_recipe,
    get_recipe,
    list_recipes,
    resolve_for_virtual_product,
    update_recipe,
)
from ._requirements import calculate_required_raw_quantity
from ._validation import validate_recipe_fields

# Name used by sales and production callers
get_recipe_for_virtual_product = resolve_for_virtual_product

__all__ = [
    'create_recipe',
    'update_recipe',
    'delete_recipe',
    'get_recipe',
    'list_recipes',
    'resolve_for_virtual_product',
    'get_recipe_for_virtual_product',
    'calculate_required_raw_quantity',
    'validate_recipe_fields',
]
