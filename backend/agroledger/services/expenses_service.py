# Overview: Service-layer operations for operating expenses.

from __future__ import annotations

import logging
from datetime import datetime

from ..models import Expense
from agroledger.time_utils import utcnow
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


def list_expenses(
    store: LedgerStore,
    start: datetime | None = None,
    end: datetime | None = None,
    expense_type: str | None = None,
) -> list[Expense]:
    """Expenses newest first, optionally limited to [start, end] and one type."""
    query = store.session.query(Expense)
    if start is not None:
        query = query.filter(Expense.date >= start)
    if end is not None:
        query = query.filter(Expense.date <= end)
    if expense_type:
        query = query.filter(Expense.type == expense_type.upper())
    return query.order_by(Expense.date.desc(), Expense.id.desc()).all()


def create_expense(store: LedgerStore, patch: dict) -> Expense:
    data = dict(patch)
    if data.get("date") is None:
        data["date"] = utcnow()
    with store.atomic():
        expense = store.add(Expense(**data))
        store.flush()
    logger.info("Expense %s recorded: %s (%s cents)", expense.id, expense.type, expense.amount_cents)
    return expense


def delete_expense(store: LedgerStore, expense_id: int) -> None:
    with store.atomic():
        expense = store.get_expense(expense_id)
        store.delete(expense)
        store.flush()
