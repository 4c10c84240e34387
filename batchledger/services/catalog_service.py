"""Read-only lookups into the product/branch catalog."""

from __future__ import annotations

from ..extensions import db
from ..models import Branch, Product
from .errors import BranchNotFoundError, InvalidProductTypeError, ProductNotFoundError


class CatalogLookup:

    @staticmethod
    def get_product(product_id, expected_type: str | None = None, role: str = "Product") -> Product:
        product = db.session.get(Product, product_id) if product_id is not None else None
        if product is None:
            raise ProductNotFoundError(product_id, role=role)
        if expected_type is not None and product.type != expected_type:
            raise InvalidProductTypeError(product_id, product.type, expected_type)
        return product

    @staticmethod
    def get_branch(branch_id) -> Branch:
        branch = db.session.get(Branch, branch_id) if branch_id is not None else None
        if branch is None:
            raise BranchNotFoundError(branch_id)
        return branch
