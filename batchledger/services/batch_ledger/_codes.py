"""Instance code generation for batches."""

import re

from flask import current_app
from sqlalchemy import select

from ...extensions import db
from ...models import InventoryBatch

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_-]+')


def sanitize_code_prefix(sku) -> str:
    prefix = _UNSAFE_CHARS.sub('-', str(sku or '').strip()).strip('-')
    return prefix.upper() or 'BATCH'


def instance_code_taken(branch_id, instance_code, exclude_batch_id=None) -> bool:
    stmt = select(InventoryBatch.id).where(
        InventoryBatch.branch_id == branch_id,
        InventoryBatch.instance_code == instance_code,
    )
    if exclude_batch_id is not None:
        stmt = stmt.where(InventoryBatch.id != exclude_batch_id)
    return db.session.execute(stmt).first() is not None


def next_instance_code(product, branch_id) -> str:
    """``{SKU}-{NNN}``, sequenced per product and branch."""
    prefix = sanitize_code_prefix(product.sku)
    width = int(current_app.config.get('INSTANCE_CODE_SEQUENCE_WIDTH', 3) or 3)

    existing = db.session.execute(
        select(InventoryBatch.instance_code).where(
            InventoryBatch.product_id == product.id,
            InventoryBatch.branch_id == branch_id,
            InventoryBatch.instance_code.like(f'{prefix}-%'),
        )
    ).scalars()

    pattern = re.compile(rf'^{re.escape(prefix)}-(\d+)$')
    highest = 0
    for code in existing:
        match = pattern.match(code or '')
        if match:
            highest = max(highest, int(match.group(1)))

    sequence = highest + 1
    candidate = f'{prefix}-{sequence:0{width}d}'
    # Another product may already hold the same code in this branch
    while instance_code_taken(branch_id, candidate):
        sequence += 1
        candidate = f'{prefix}-{sequence:0{width}d}'
    return candidate


def split_instance_code(source_code, branch_id) -> str:
    """Source code if free at the destination, else ``{code}-S{n}``."""
    if not instance_code_taken(branch_id, source_code):
        return source_code
    n = 1
    while instance_code_taken(branch_id, f'{source_code}-S{n}'):
        n += 1
    return f'{source_code}-S{n}'
