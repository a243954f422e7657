# Overview: Service-layer operations for stock; keeps product stock counters in step with sale items.

"""
Stock Reconciler

Invariants:
- Only products with track_stock=True and a defined stock are touched.
- No lower bound: stock may go negative (over-sale is accepted, not an error).
- Best-effort: a product that cannot be adjusted is logged and skipped;
  the remaining items are still processed and the caller is never aborted.
- Within a sale edit, old items are restored (INCREMENT) before new items
  are taken (DECREMENT).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)

DECREMENT = "DECREMENT"
INCREMENT = "INCREMENT"
DIRECTIONS = (DECREMENT, INCREMENT)


class StockLine(Protocol):
    product_id: int
    quantity: float


@dataclass
class StockResult:
    adjusted: list[int] = field(default_factory=list)
    untracked: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


def apply_items(store: LedgerStore, items: Iterable[StockLine], direction: str) -> StockResult:
    """
    Adjust stock for each item: DECREMENT subtracts quantity, INCREMENT adds it.

    Returns which product ids were adjusted, untracked, or skipped.
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"Invalid stock direction: {direction}")

    sign = -1 if direction == DECREMENT else 1
    result = StockResult()

    for item in items:
        try:
            product = store.find_product(item.product_id)
        except SQLAlchemyError:
            logger.warning("Stock %s skipped for product %s: lookup failed", direction, item.product_id, exc_info=True)
            result.skipped.append(item.product_id)
            continue

        if product is None:
            logger.warning("Stock %s skipped: product %s no longer exists", direction, item.product_id)
            result.skipped.append(item.product_id)
            continue

        if not product.track_stock or product.stock is None:
            result.untracked.append(product.id)
            continue

        product.stock = product.stock + sign * float(item.quantity)
        result.adjusted.append(product.id)

        if product.stock < 0:
            logger.info("Product %s stock is negative (%s) after %s", product.id, product.stock, direction)

    return result
