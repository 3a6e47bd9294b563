"""Soft delete utilities.

Products are never removed from the database because order items keep
referring to them. Instead a ``deleted_at`` timestamp is set, and every
query that should only see live listings filters ``deleted_at IS NULL``.
"""
from __future__ import annotations

import logging

from ..db import db
from ..models import CartItem, Product
from ..util.timeutil import utcnow

logger = logging.getLogger(__name__)


def active_products():
    """Query of products that have not been soft deleted."""
    return Product.query.filter(Product.deleted_at.is_(None))


def soft_delete_product(product: Product) -> None:
    """Soft delete a product and drop it from every cart.

    This function sets the ``deleted_at`` timestamp on the product and
    removes any cart lines pointing at it so that it can no longer be
    checked out. Changes are flushed to the database session but not
    committed, allowing the caller to decide when to commit.

    Parameters
    ----------
    product: Product
        The product to be soft deleted.
    """
    if product.deleted_at is not None:
        return
    product.deleted_at = utcnow()
    CartItem.query.filter_by(product_id=product.id).delete(synchronize_session=False)
    db.session.flush()
    logger.info("Soft deleted product %s", product.id)
