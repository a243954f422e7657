"""
Sale Mutation Coordinator

WHY: A sale touches four things at once: the sale row, its items, product
stock, and the client's debt. Every create/edit/delete goes through here so
those stay consistent, inside one unit of work.

Lifecycle:
- CASH sales are born PAID with a zero balance.
- CREDIT sales are born PENDING (balance = final total) and move to
  PARTIAL / PAID as payments are allocated. PAID is terminal for the
  balance but the sale stays editable.

Ordering inside an edit: stock for the old items is restored before the
new items are taken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from ..errors import LedgerError, PartialWriteError, ValidationError
from ..models import Expense, Sale, SaleItem
from ..models.expenses import EXPENSE_CARD_FEE
from ..models.sales import (
    CARD_PAYMENT_METHODS,
    DELIVERY_DELIVERED,
    DELIVERY_PENDING,
    DELIVERY_STATUSES,
    PAYMENT_METHODS,
    SALE_TYPE_CASH,
    SALE_TYPE_CREDIT,
    SALE_TYPES,
    STATUS_PAID,
    STATUS_PENDING,
    PAID_TOLERANCE_CENTS,
)
from agroledger.time_utils import parse_iso_datetime, utcnow
from .concurrency import run_with_retry
from .debt_service import recompute_client_debt
from .ledger_store import LedgerStore
from .settings_service import card_fee_percent
from .settlement_service import draw_client_credit_locked, set_sale_balance
from . import stock_service

logger = logging.getLogger(__name__)


# =============================================================================
# DRAFTS
# =============================================================================

@dataclass
class ItemInput:
    product_id: int
    quantity: float
    unit_price_cents: int | None = None


@dataclass
class SaleDraft:
    type: str
    items: list[ItemInput]
    client_id: int | None = None
    adjustment_cents: int = 0
    payment_method: str | None = None
    apply_client_credit: bool = False
    is_delivery: bool = False
    delivery_address: str | None = None
    delivery_status: str | None = None
    preferred_delivery_date: datetime | None = None
    created_at: datetime | None = None


@dataclass
class _ResolvedItem:
    product_id: int
    product_name: str
    quantity: float
    unit_price_cents: int
    total_cents: int


@dataclass
class _Totals:
    items: list[_ResolvedItem] = field(default_factory=list)
    subtotal_cents: int = 0
    final_total_cents: int = 0


def _require_int(value, name: str, *, allow_none: bool = False) -> int | None:
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def _require_quantity(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("quantity must be a number")
    if value <= 0:
        raise ValidationError("quantity must be > 0")
    return float(value)


def parse_items(raw_items) -> list[ItemInput]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("A sale needs at least one item")

    items = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {i + 1} must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"Item {i + 1} is missing product_id")
        items.append(ItemInput(
            product_id=_require_int(raw.get("product_id"), "product_id"),
            quantity=_require_quantity(raw.get("quantity")),
            unit_price_cents=_require_int(raw.get("unit_price_cents"), "unit_price_cents", allow_none=True),
        ))
    return items


def _parse_datetime(value, name: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def parse_draft(payload: dict) -> SaleDraft:
    """Build a SaleDraft from a JSON payload, rejecting malformed input."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    return SaleDraft(
        type=str(payload.get("type") or SALE_TYPE_CASH).upper(),
        items=parse_items(payload.get("items")),
        client_id=_require_int(payload.get("client_id"), "client_id", allow_none=True),
        adjustment_cents=_require_int(payload.get("adjustment_cents", 0), "adjustment_cents"),
        payment_method=payload.get("payment_method"),
        apply_client_credit=bool(payload.get("apply_client_credit", False)),
        is_delivery=bool(payload.get("is_delivery", False)),
        delivery_address=payload.get("delivery_address"),
        delivery_status=payload.get("delivery_status"),
        preferred_delivery_date=_parse_datetime(payload.get("preferred_delivery_date"), "preferred_delivery_date"),
        created_at=_parse_datetime(payload.get("created_at"), "created_at"),
    )


def _validate_draft(draft: SaleDraft) -> None:
    if draft.type not in SALE_TYPES:
        raise ValidationError(f"Invalid sale type: {draft.type}. Must be one of {list(SALE_TYPES)}")
    if not draft.items:
        raise ValidationError("A sale needs at least one item")
    if draft.type == SALE_TYPE_CREDIT and draft.client_id is None:
        raise ValidationError("A CREDIT sale requires a client")
    if draft.payment_method is not None and draft.payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {draft.payment_method}. Must be one of {list(PAYMENT_METHODS)}")
    if draft.type == SALE_TYPE_CREDIT and draft.payment_method is not None:
        raise ValidationError("payment_method applies to CASH sales only")
    if draft.delivery_status is not None and draft.delivery_status not in DELIVERY_STATUSES:
        raise ValidationError(f"Invalid delivery status: {draft.delivery_status}")
    _require_int(draft.adjustment_cents, "adjustment_cents")
    for item in draft.items:
        _require_quantity(item.quantity)


def _resolve_items(store: LedgerStore, items: list[ItemInput], adjustment_cents: int) -> _Totals:
    """Price each item (snapshotting product name) and compute sale totals."""
    totals = _Totals()
    for item in items:
        product = store.get_product(item.product_id)
        unit_price = item.unit_price_cents if item.unit_price_cents is not None else product.price_cents
        if unit_price < 0:
            raise ValidationError("unit_price_cents must be >= 0")
        line_total = int(round(item.quantity * unit_price))
        totals.items.append(_ResolvedItem(
            product_id=product.id,
            product_name=product.name,
            quantity=item.quantity,
            unit_price_cents=unit_price,
            total_cents=line_total,
        ))
        totals.subtotal_cents += line_total

    totals.final_total_cents = totals.subtotal_cents + adjustment_cents
    if totals.final_total_cents < 0:
        raise ValidationError("Adjustment cannot make the sale total negative")
    return totals


def _insert_items(store: LedgerStore, sale: Sale, items: list[_ResolvedItem]) -> list[SaleItem]:
    rows = []
    for item in items:
        rows.append(store.add(SaleItem(
            sale_id=sale.id,
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            total_cents=item.total_cents,
        )))
    store.flush()
    return rows


def _delete_items(store: LedgerStore, sale: Sale, items: list[SaleItem]) -> None:
    for item in items:
        store.delete(item)
    store.flush()
    store.expire(sale, ["items"])


def _add_card_fee(store: LedgerStore, sale: Sale, fee_defaults: dict[str, float] | None) -> Expense | None:
    percent = card_fee_percent(store, sale.payment_method, fee_defaults)
    fee_cents = int(round(sale.final_total_cents * percent / 100))
    if fee_cents <= 0:
        return None
    return store.add(Expense(
        description=f"Taxa cartao venda #{sale.id}",
        amount_cents=fee_cents,
        type=EXPENSE_CARD_FEE,
        date=sale.created_at,
    ))


# =============================================================================
# CREATE
# =============================================================================

def create_sale(store: LedgerStore, draft: SaleDraft, *, fee_defaults: dict[str, float] | None = None) -> Sale:
    """
    Create a sale with its items, take stock, and book client debt.

    Raises:
        ValidationError: bad draft (no items, CREDIT without client, ...)
        NotFoundError: client or product missing
        PartialWriteError: item insert failed after the sale row was written;
            the sale row has been removed again
    """
    _validate_draft(draft)

    def _op():
        with store.atomic():
            client = store.lock_client(draft.client_id) if draft.client_id is not None else None
            totals = _resolve_items(store, draft.items, draft.adjustment_cents)

            sale = Sale(
                client_id=client.id if client else None,
                client_name=client.name if client else None,
                type=draft.type,
                subtotal_cents=totals.subtotal_cents,
                adjustment_cents=draft.adjustment_cents,
                final_total_cents=totals.final_total_cents,
                is_delivery=draft.is_delivery,
                delivery_address=draft.delivery_address,
                delivery_status=draft.delivery_status or (DELIVERY_PENDING if draft.is_delivery else None),
                preferred_delivery_date=draft.preferred_delivery_date,
                created_at=draft.created_at or utcnow(),
            )
            if draft.type == SALE_TYPE_CASH:
                sale.remaining_balance_cents = 0
                sale.status = STATUS_PAID
                sale.payment_method = draft.payment_method or "MONEY"
            else:
                sale.remaining_balance_cents = totals.final_total_cents
                sale.status = STATUS_PAID if totals.final_total_cents <= PAID_TOLERANCE_CENTS else STATUS_PENDING
                if sale.status == STATUS_PAID:
                    sale.remaining_balance_cents = 0

            store.add(sale)
            store.flush()

            try:
                _insert_items(store, sale, totals.items)
            except (SQLAlchemyError, LedgerError) as exc:
                # Rolling back the unit of work removes the sale row written above.
                logger.error("Item insert failed for sale %s; removing the sale row", sale.id, exc_info=True)
                raise PartialWriteError(
                    "Sale items could not be saved; the sale was not created",
                    details={"sale_id": sale.id},
                ) from exc

            stock_service.apply_items(store, totals.items, stock_service.DECREMENT)

            if sale.is_credit:
                if draft.apply_client_credit:
                    draw_client_credit_locked(store, client, sale)
                # Fresh debt, so adding it is safe here.
                client.total_debt_cents += sale.remaining_balance_cents
                client.last_interaction = utcnow()
            elif sale.payment_method in CARD_PAYMENT_METHODS:
                _add_card_fee(store, sale, fee_defaults)

            store.flush()

        logger.info("Sale %s created: %s %s cents", sale.id, sale.type, sale.final_total_cents)
        return sale

    return run_with_retry(_op, session=store.session, attempts=store.retry_attempts)


# =============================================================================
# EDIT
# =============================================================================

def edit_sale(store: LedgerStore, sale_id: int, items: list[ItemInput], adjustment_cents: int) -> Sale:
    """
    Replace a sale's items and adjustment, re-taking stock and rebalancing.

    adjustment_cents is always required so a stale adjustment is never
    carried over silently.

    CREDIT sales apply diff = new_total - old_total to the balance. If the
    balance would go negative, the excess becomes client credit and the
    balance is clamped to zero; client debt is then recomputed in full.
    CASH sales only get new totals.
    """
    if not items:
        raise ValidationError("A sale needs at least one item")
    _require_int(adjustment_cents, "adjustment_cents")
    for item in items:
        _require_quantity(item.quantity)

    def _op():
        with store.atomic():
            sale = store.get_sale(sale_id, lock=True)
            totals = _resolve_items(store, items, adjustment_cents)
            old_items = store.sale_items(sale.id)
            old_final = sale.final_total_cents

            stock_service.apply_items(store, old_items, stock_service.INCREMENT)
            _delete_items(store, sale, old_items)
            _insert_items(store, sale, totals.items)
            stock_service.apply_items(store, totals.items, stock_service.DECREMENT)

            sale.subtotal_cents = totals.subtotal_cents
            sale.adjustment_cents = adjustment_cents
            sale.final_total_cents = totals.final_total_cents

            if sale.is_credit:
                new_balance = sale.remaining_balance_cents + (totals.final_total_cents - old_final)
                if new_balance < 0:
                    client = store.lock_client(sale.client_id)
                    client.credit_cents += -new_balance
                    logger.info("Sale %s edit: %s cents moved to client %s credit", sale.id, -new_balance, client.id)
                    new_balance = 0
                set_sale_balance(sale, new_balance)
                if sale.client_id is not None:
                    recompute_client_debt(store, sale.client_id, touch=True)
            store.flush()

        logger.info("Sale %s edited: total %s -> %s cents", sale_id, old_final, sale.final_total_cents)
        return sale

    return run_with_retry(_op, session=store.session, attempts=store.retry_attempts)


# =============================================================================
# DELETE
# =============================================================================

def delete_sale(store: LedgerStore, sale_id: int) -> None:
    """
    Delete a sale: restore stock, drop items then the sale, recompute debt.

    For a CREDIT sale, money already paid against it is not lost: it goes
    to the client's credit, same as an edit that shrinks the total below
    what was paid.
    """
    def _op():
        with store.atomic():
            sale = store.get_sale(sale_id, lock=True)
            items = store.sale_items(sale.id)
            client_id = sale.client_id if sale.is_credit else None
            paid_cents = sale.final_total_cents - sale.remaining_balance_cents if sale.is_credit else 0

            stock_service.apply_items(store, items, stock_service.INCREMENT)
            _delete_items(store, sale, items)
            store.delete(sale)
            store.flush()

            if client_id is not None:
                if paid_cents > 0:
                    client = store.lock_client(client_id)
                    client.credit_cents += paid_cents
                recompute_client_debt(store, client_id, touch=True)

        logger.info("Sale %s deleted", sale_id)

    run_with_retry(_op, session=store.session, attempts=store.retry_attempts)


# =============================================================================
# QUERIES / DELIVERY
# =============================================================================

def list_sales(store: LedgerStore, client_id: int | None = None) -> list[Sale]:
    query = store.session.query(Sale)
    if client_id is not None:
        query = query.filter(Sale.client_id == client_id)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def mark_delivery(store: LedgerStore, sale_id: int, status: str) -> Sale:
    if status not in DELIVERY_STATUSES:
        raise ValidationError(f"Invalid delivery status: {status}. Must be one of {list(DELIVERY_STATUSES)}")

    with store.atomic():
        sale = store.get_sale(sale_id, lock=True)
        if not sale.is_delivery:
            raise ValidationError("Sale is not a delivery")
        sale.delivery_status = status
        sale.delivery_date = utcnow() if status == DELIVERY_DELIVERED else None
    return sale
