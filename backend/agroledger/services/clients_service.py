# Overview: Service-layer operations for clients and their account statements.

"""
Clients

Only contact fields are writable here. credit_cents and total_debt_cents
belong to the ledger engine and are changed by sales and payments only.
"""

from __future__ import annotations

import logging

from ..errors import IntegrityError
from ..models import Client
from agroledger.time_utils import days_between, to_utc_z
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


def list_clients(store: LedgerStore, search: str | None = None, with_debt: bool = False) -> list[Client]:
    query = store.session.query(Client)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter((Client.name.ilike(like)) | (Client.cpf == search.strip()))
    if with_debt:
        query = query.filter(Client.total_debt_cents > 0)
    return query.order_by(Client.name.asc(), Client.id.asc()).all()


def create_client(store: LedgerStore, patch: dict) -> Client:
    with store.atomic():
        client = store.add(Client(**patch))
        store.flush()
    logger.info("Client %s created: %s", client.id, client.name)
    return client


def update_client(store: LedgerStore, client_id: int, patch: dict) -> Client:
    with store.atomic():
        client = store.lock_client(client_id)
        for key, value in patch.items():
            setattr(client, key, value)
        store.flush()
    return client


def delete_client(store: LedgerStore, client_id: int) -> None:
    """
    Raises:
        NotFoundError: unknown client
        IntegrityError: client still has sales or payment records
    """
    with store.atomic():
        client = store.lock_client(client_id)
        if store.client_is_referenced(client.id):
            raise IntegrityError(
                "Client has sales or payments and cannot be deleted",
                details={"client_id": client.id},
            )
        store.delete(client)
        store.flush()
    logger.info("Client %s deleted", client_id)


def oldest_debt_days(store: LedgerStore, client_id: int) -> int:
    """Age in days of the oldest CREDIT sale still carrying a balance (0 if none)."""
    open_sales = store.open_credit_sales(client_id)
    if not open_sales:
        return 0
    return days_between(open_sales[0].created_at)


def client_statement(store: LedgerStore, client_id: int) -> dict:
    """
    Account statement: client balances plus sales and payments merged into
    one newest-first timeline.
    """
    client = store.get_client(client_id)

    entries = []
    for sale in store.client_sales(client.id):
        entries.append({
            "kind": "sale",
            "at": sale.created_at,
            "sale": sale.to_dict(include_items=True),
        })
    for payment in store.client_payments(client.id):
        entries.append({
            "kind": "payment",
            "at": payment.created_at,
            "payment": payment.to_dict(),
        })

    entries.sort(key=lambda e: e["at"], reverse=True)
    for entry in entries:
        entry["at"] = to_utc_z(entry["at"])

    return {
        "client": client.to_dict(),
        "oldest_debt_days": oldest_debt_days(store, client.id),
        "entries": entries,
    }
