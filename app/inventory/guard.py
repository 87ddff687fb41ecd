

# app/inventory/guard.py
from __future__ import annotations

import logging

from app.store.base import UnitOfWork

logger = logging.getLogger("nexus.inventory")


def decrement_stock(uow: UnitOfWork, product_id: str, quantity: int) -> int:
    """
    The only way product stock goes down.

    Conditional decrement inside the caller's unit of work; raises
    InsufficientStock (nothing written) when the product can't cover `quantity`.
    """
    remaining = uow.decrement_stock(product_id, quantity)
    logger.info("stock decremented product=%s qty=%s remaining=%s", product_id, quantity, remaining)
    return remaining
