# Overview: Ledger engine facade; one object exposing every ledger operation over an explicit store.

"""
Ledger Engine

Built once per unit of work around a LedgerStore and the app config. Routes
and CLI commands call the engine instead of reaching into individual
service modules, so the store and configuration are injected in one place.
"""

from __future__ import annotations

from typing import Mapping

from .ledger_store import LedgerStore
from . import backup_service, debt_service, sales_service, settlement_service


class LedgerEngine:
    def __init__(self, store: LedgerStore, config: Mapping | None = None):
        config = config or {}
        self.store = store
        self.fee_defaults = {
            "CREDIT_CARD": float(config.get("LEDGER_CREDIT_CARD_FEE_PERCENT", 0.0)),
            "DEBIT_CARD": float(config.get("LEDGER_DEBIT_CARD_FEE_PERCENT", 0.0)),
        }
        self.backup_version = config.get("LEDGER_BACKUP_VERSION", backup_service.DEFAULT_BACKUP_VERSION)
        self.supported_backup_versions = frozenset(
            config.get("LEDGER_SUPPORTED_BACKUP_VERSIONS", {self.backup_version})
        )

    @classmethod
    def for_session(cls, session, config: Mapping | None = None) -> "LedgerEngine":
        attempts = int((config or {}).get("LEDGER_RETRY_ATTEMPTS", 3))
        return cls(LedgerStore(session, retry_attempts=attempts), config)

    # Sales
    def create_sale(self, draft: sales_service.SaleDraft):
        return sales_service.create_sale(self.store, draft, fee_defaults=self.fee_defaults)

    def edit_sale(self, sale_id: int, items, adjustment_cents: int):
        return sales_service.edit_sale(self.store, sale_id, items, adjustment_cents)

    def delete_sale(self, sale_id: int) -> None:
        sales_service.delete_sale(self.store, sale_id)

    def mark_delivery(self, sale_id: int, status: str):
        return sales_service.mark_delivery(self.store, sale_id, status)

    # Payments
    def allocate_payment(self, client_id: int, amount_cents: int):
        return settlement_service.allocate_payment(self.store, client_id, amount_cents)

    def settle_sale(self, sale_id: int):
        return settlement_service.settle_sale(self.store, sale_id)

    def edit_payment(self, payment_id: int, new_amount_cents: int):
        return settlement_service.edit_payment(self.store, payment_id, new_amount_cents)

    def delete_payment(self, payment_id: int):
        return settlement_service.delete_payment(self.store, payment_id)

    # Debt
    def recompute_client_debt(self, client_id: int):
        with self.store.atomic():
            client = debt_service.recompute_client_debt(self.store, client_id)
        return client

    def recompute_all_debts(self) -> int:
        with self.store.atomic():
            drifted = debt_service.recompute_all_debts(self.store)
        return drifted

    # Backup
    def export_backup(self) -> dict:
        return backup_service.export_backup(self.store, self.backup_version)

    def import_backup(self, document: dict) -> dict:
        return backup_service.import_backup(self.store, document, self.supported_backup_versions)
