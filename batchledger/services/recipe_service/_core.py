"""
Recipe Core Operations

CRUD for conversion rules plus cached resolution of a manufactured virtual
product to its recipe.
"""

import logging
from typing import List, Optional

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ...extensions import cache, db
from ...models import Recipe
from ..cache_invalidation import invalidate_recipe_resolution, recipe_resolution_cache_key
from ..catalog_service import CatalogLookup
from ..errors import DuplicateRecipeError, InvalidInputError, RecipeNotFoundError
from ._validation import validate_recipe_fields, validate_recipe_products

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {
    'name',
    'virtual_product_id',
    'raw_product_id',
    'conversion_factor',
    'wastage_margin',
}


def create_recipe(name, virtual_product_id, raw_product_id, conversion_factor,
                  wastage_margin=0, created_by=None) -> Recipe:
    """Create a conversion rule after validating fields, products and uniqueness."""
    cleaned = validate_recipe_fields(name, conversion_factor, wastage_margin)
    validate_recipe_products(virtual_product_id, raw_product_id)
    _ensure_unique_pair(virtual_product_id, raw_product_id)

    recipe = Recipe(
        name=cleaned['name'],
        virtual_product_id=virtual_product_id,
        raw_product_id=raw_product_id,
        conversion_factor=cleaned['conversion_factor'],
        wastage_margin=cleaned['wastage_margin'],
        created_by=created_by,
    )
    db.session.add(recipe)
    _commit_recipe_change(virtual_product_id, raw_product_id)
    invalidate_recipe_resolution(virtual_product_id)

    logger.info(
        "Created recipe %s (%s): virtual %s -> raw %s x%s +%s%%",
        recipe.id, recipe.name, virtual_product_id, raw_product_id,
        recipe.conversion_factor, recipe.wastage_margin,
    )
    return recipe


def update_recipe(recipe_id, **fields) -> Recipe:
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise InvalidInputError(f"Unknown recipe fields: {', '.join(sorted(unknown))}")
    cleared = sorted(key for key, value in fields.items() if value is None)
    if cleared:
        raise InvalidInputError(f"Recipe fields cannot be cleared: {', '.join(cleared)}", fields=cleared)

    recipe = get_recipe(recipe_id)
    previous_virtual_id = recipe.virtual_product_id

    cleaned = validate_recipe_fields(
        fields.get('name'),
        fields.get('conversion_factor'),
        fields.get('wastage_margin'),
        partial=True,
    )

    virtual_product_id = fields.get('virtual_product_id', recipe.virtual_product_id)
    raw_product_id = fields.get('raw_product_id', recipe.raw_product_id)
    if (virtual_product_id, raw_product_id) != (recipe.virtual_product_id, recipe.raw_product_id):
        validate_recipe_products(virtual_product_id, raw_product_id)
        _ensure_unique_pair(virtual_product_id, raw_product_id, exclude_id=recipe.id)

    for key, value in cleaned.items():
        setattr(recipe, key, value)
    recipe.virtual_product_id = virtual_product_id
    recipe.raw_product_id = raw_product_id

    _commit_recipe_change(virtual_product_id, raw_product_id)
    invalidate_recipe_resolution(previous_virtual_id, virtual_product_id)

    logger.info("Updated recipe %s: %s", recipe.id, sorted(fields))
    return recipe


def delete_recipe(recipe_id) -> None:
    recipe = get_recipe(recipe_id)
    virtual_product_id = recipe.virtual_product_id
    db.session.delete(recipe)
    db.session.commit()
    invalidate_recipe_resolution(virtual_product_id)
    logger.info("Deleted recipe %s (virtual product %s)", recipe_id, virtual_product_id)


def get_recipe(recipe_id) -> Recipe:
    recipe = db.session.get(Recipe, recipe_id) if recipe_id is not None else None
    if recipe is None:
        raise RecipeNotFoundError(f"Recipe not found: {recipe_id}", recipe_id=recipe_id)
    return recipe


def list_recipes(virtual_product_id=None, raw_product_id=None) -> List[Recipe]:
    stmt = select(Recipe)
    if virtual_product_id is not None:
        stmt = stmt.where(Recipe.virtual_product_id == virtual_product_id)
    if raw_product_id is not None:
        stmt = stmt.where(Recipe.raw_product_id == raw_product_id)
    stmt = stmt.order_by(Recipe.created_at.asc(), Recipe.id.asc())
    return list(db.session.execute(stmt).scalars())


def resolve_for_virtual_product(virtual_product_id) -> Recipe:
    """
    Return the recipe that converts ``virtual_product_id`` into raw material.

    The mapping virtual product -> recipe id is cached. When more than one
    recipe exists the oldest one is used.
    """
    cache_key = recipe_resolution_cache_key(virtual_product_id)
    cached_id = cache.get(cache_key)
    if cached_id is not None:
        recipe = db.session.get(Recipe, cached_id)
        if recipe is not None and recipe.virtual_product_id == virtual_product_id:
            return recipe
        logger.debug("Stale recipe cache entry for virtual product %s", virtual_product_id)
        cache.delete(cache_key)

    recipe = _query_recipe_for_virtual_product(virtual_product_id)
    cache.set(cache_key, recipe.id, timeout=current_app.config.get('RECIPE_CACHE_TIMEOUT', 300))
    return recipe


def _query_recipe_for_virtual_product(virtual_product_id) -> Recipe:
    candidates = list_recipes(virtual_product_id=virtual_product_id)
    if not candidates:
        # Distinguish an unknown product from one that simply has no recipe
        CatalogLookup.get_product(virtual_product_id, role="Virtual product")
        raise RecipeNotFoundError(
            f"No recipe for virtual product {virtual_product_id}",
            virtual_product_id=virtual_product_id,
        )
    if len(candidates) > 1:
        logger.warning(
            "Virtual product %s has %d recipes; using oldest recipe %s",
            virtual_product_id, len(candidates), candidates[0].id,
        )
    return candidates[0]


def _ensure_unique_pair(virtual_product_id, raw_product_id, exclude_id: Optional[int] = None) -> None:
    stmt = select(Recipe.id).where(
        Recipe.virtual_product_id == virtual_product_id,
        Recipe.raw_product_id == raw_product_id,
    )
    if exclude_id is not None:
        stmt = stmt.where(Recipe.id != exclude_id)
    if db.session.execute(stmt).first() is not None:
        raise _duplicate(virtual_product_id, raw_product_id)


def _commit_recipe_change(virtual_product_id, raw_product_id) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate(virtual_product_id, raw_product_id) from None


def _duplicate(virtual_product_id, raw_product_id) -> DuplicateRecipeError:
    return DuplicateRecipeError(
        f"A recipe already converts product {virtual_product_id} into {raw_product_id}",
        virtual_product_id=virtual_product_id,
        raw_product_id=raw_product_id,
    )
