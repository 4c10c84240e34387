from __future__ import annotations

import logging

from flask import has_app_context

from ..extensions import cache
from ..utils.cache_utils import stable_cache_key

__all__ = [
    "recipe_resolution_cache_key",
    "invalidate_recipe_resolution",
]

logger = logging.getLogger(__name__)

_RECIPE_RESOLUTION_PREFIX = "recipe:resolve:v1"


def recipe_resolution_cache_key(virtual_product_id) -> str:
    return stable_cache_key(_RECIPE_RESOLUTION_PREFIX, {"virtual_product_id": virtual_product_id})


def invalidate_recipe_resolution(*virtual_product_ids) -> None:
    if not has_app_context():
        return
    for virtual_product_id in virtual_product_ids:
        if virtual_product_id is None:
            continue
        if not cache.delete(recipe_resolution_cache_key(virtual_product_id)):
            logger.debug("No cached recipe resolution for virtual product %s", virtual_product_id)
