# Overview: Service-layer operations for product master data.

"""
Product catalog.

Barcodes are unique when present. A product that appears on any sale item
cannot be deleted; stock is normally moved only by the stock reconciler,
but a direct edit (inventory count) is allowed here.
"""

from __future__ import annotations

import logging

from ..errors import IntegrityError
from ..models import Product
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


def _check_barcode_free(store: LedgerStore, barcode: str | None, product_id: int | None = None) -> None:
    if not barcode:
        return
    existing = store.find_product_by_barcode(barcode)
    if existing is not None and existing.id != product_id:
        raise IntegrityError(
            "Barcode already assigned to another product",
            details={"barcode": barcode, "product_id": existing.id},
        )


def list_products(store: LedgerStore, search: str | None = None) -> list[Product]:
    query = store.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter((Product.name.ilike(like)) | (Product.barcode == search.strip()))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def low_stock_products(store: LedgerStore) -> list[Product]:
    """Tracked products at or below their minimum stock."""
    rows = (
        store.session.query(Product)
        .filter(
            Product.track_stock.is_(True),
            Product.min_stock.isnot(None),
            Product.stock <= Product.min_stock,
        )
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )
    return rows


def create_product(store: LedgerStore, patch: dict) -> Product:
    """
    Create a product from a validated patch.

    Raises:
        IntegrityError: barcode already in use
    """
    with store.atomic():
        _check_barcode_free(store, patch.get("barcode"))
        product = store.add(Product(**patch))
        store.flush()
    logger.info("Product %s created: %s", product.id, product.name)
    return product


def update_product(store: LedgerStore, product_id: int, patch: dict) -> Product:
    with store.atomic():
        product = store.get_product(product_id, lock=True)
        if "barcode" in patch:
            _check_barcode_free(store, patch["barcode"], product_id=product.id)
        for key, value in patch.items():
            setattr(product, key, value)
        store.flush()
    return product


def delete_product(store: LedgerStore, product_id: int) -> None:
    """
    Raises:
        NotFoundError: unknown product
        IntegrityError: product is referenced by at least one sale item
    """
    with store.atomic():
        product = store.get_product(product_id, lock=True)
        if store.product_is_referenced(product.id):
            raise IntegrityError(
                "Product is referenced by existing sales and cannot be deleted",
                details={"product_id": product.id},
            )
        store.delete(product)
        store.flush()
    logger.info("Product %s deleted", product_id)
