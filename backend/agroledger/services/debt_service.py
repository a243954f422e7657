# Overview: Service-layer operations for client debt; derives total debt from sale balances.

"""
Debt Recomputation

A client's total_debt_cents is a materialized view: the sum of
remaining_balance_cents over that client's CREDIT sales. It is always
rebuilt from the sales, never adjusted by deltas, after any mutation that
can move a sale balance (sale create/edit/delete, payment allocate/edit/
delete, single-sale settlement).
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..models import Client, Sale
from ..models.sales import SALE_TYPE_CREDIT
from agroledger.time_utils import utcnow
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


def sum_open_balance(store: LedgerStore, client_id: int) -> int:
    total = (
        store.session.query(func.coalesce(func.sum(Sale.remaining_balance_cents), 0))
        .filter(Sale.client_id == client_id, Sale.type == SALE_TYPE_CREDIT)
        .scalar()
    )
    return int(total or 0)


def recompute_client_debt(store: LedgerStore, client_id: int, touch: bool = False) -> Client:
    """
    Overwrite client.total_debt_cents with the sum of its CREDIT sale balances.

    Args:
        touch: also bump last_interaction (payment/sale flows do, maintenance does not)
    """
    client = store.lock_client(client_id)
    # Pending balance changes must be visible to the SUM query.
    store.flush()

    total = sum_open_balance(store, client_id)
    if client.total_debt_cents != total:
        logger.debug("Client %s debt %s -> %s", client_id, client.total_debt_cents, total)
    client.total_debt_cents = total
    if touch:
        client.last_interaction = utcnow()
    return client


def recompute_all_debts(store: LedgerStore) -> int:
    """
    Recompute every client's debt. Returns how many clients had drifted.
    """
    drifted = 0
    for client in store.all_rows(Client):
        before = client.total_debt_cents
        recompute_client_debt(store, client.id)
        if client.total_debt_cents != before:
            drifted += 1
            logger.warning(
                "Client %s cached debt drifted: %s -> %s", client.id, before, client.total_debt_cents
            )
    return drifted
