# Overview: Storage facade over one SQLAlchemy session; every engine read/write goes through it.

"""
Ledger Store

WHY: The engine never touches the global session directly. A LedgerStore
is built around an explicit session and handed to each service, so the
same engine code runs against the Flask request session, a CLI session,
or a test session.

Invariants:
- Lookups by id raise NotFoundError, never return None.
- atomic() is the unit of work: commit on success, rollback on any error.
- Database integrity failures surface as agroledger.errors.IntegrityError.
"""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import exc as sa_exc

from ..errors import IntegrityError, NotFoundError
from ..models import Client, Expense, PaymentRecord, Product, Sale, SaleItem, Setting
from ..models.sales import PAID_TOLERANCE_CENTS, SALE_TYPE_CREDIT
from .concurrency import lock_for_update


class LedgerStore:
    def __init__(self, session, retry_attempts: int = 3):
        self.session = session
        self.retry_attempts = retry_attempts

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self):
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def add(self, obj):
        self.session.add(obj)
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)

    def flush(self) -> None:
        try:
            self.session.flush()
        except sa_exc.IntegrityError as exc:
            raise IntegrityError(
                "Write rejected by database integrity rules",
                details={"reason": str(exc.orig)},
            ) from exc

    def expire(self, obj, attrs: list[str] | None = None) -> None:
        self.session.expire(obj, attrs)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, model, entity_id: int, label: str, lock: bool = False):
        query = self.session.query(model).filter_by(id=entity_id)
        if lock:
            query = lock_for_update(query)
        obj = query.first()
        if obj is None:
            raise NotFoundError(f"{label} {entity_id} not found")
        return obj

    def get_client(self, client_id: int, lock: bool = False) -> Client:
        return self._get(Client, client_id, "Client", lock=lock)

    def lock_client(self, client_id: int) -> Client:
        return self.get_client(client_id, lock=True)

    def get_product(self, product_id: int, lock: bool = False) -> Product:
        return self._get(Product, product_id, "Product", lock=lock)

    def find_product(self, product_id: int) -> Product | None:
        return self.session.query(Product).filter_by(id=product_id).first()

    def find_product_by_barcode(self, barcode: str) -> Product | None:
        return self.session.query(Product).filter_by(barcode=barcode).first()

    def get_sale(self, sale_id: int, lock: bool = False) -> Sale:
        return self._get(Sale, sale_id, "Sale", lock=lock)

    def get_payment(self, payment_id: int, lock: bool = False) -> PaymentRecord:
        return self._get(PaymentRecord, payment_id, "Payment", lock=lock)

    def get_expense(self, expense_id: int) -> Expense:
        return self._get(Expense, expense_id, "Expense")

    def get_setting(self, key: str) -> Setting | None:
        return self.session.query(Setting).filter_by(key=key).first()

    # ------------------------------------------------------------------
    # Sale queries
    # ------------------------------------------------------------------

    def sale_items(self, sale_id: int) -> list[SaleItem]:
        return (
            self.session.query(SaleItem)
            .filter_by(sale_id=sale_id)
            .order_by(SaleItem.id.asc())
            .all()
        )

    def client_sales(self, client_id: int) -> list[Sale]:
        return (
            self.session.query(Sale)
            .filter_by(client_id=client_id)
            .order_by(Sale.created_at.asc(), Sale.id.asc())
            .all()
        )

    def open_credit_sales(self, client_id: int, lock: bool = False) -> list[Sale]:
        """CREDIT sales with an unpaid balance, oldest first (ties by id)."""
        query = (
            self.session.query(Sale)
            .filter(
                Sale.client_id == client_id,
                Sale.type == SALE_TYPE_CREDIT,
                Sale.remaining_balance_cents > PAID_TOLERANCE_CENTS,
            )
            .order_by(Sale.created_at.asc(), Sale.id.asc())
        )
        if lock:
            query = lock_for_update(query)
        return query.all()

    def reopenable_credit_sales(self, client_id: int) -> list[Sale]:
        """CREDIT sales with some amount paid, newest first."""
        return (
            self.session.query(Sale)
            .filter(
                Sale.client_id == client_id,
                Sale.type == SALE_TYPE_CREDIT,
                Sale.remaining_balance_cents < Sale.final_total_cents,
            )
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .all()
        )

    def client_payments(self, client_id: int) -> list[PaymentRecord]:
        return (
            self.session.query(PaymentRecord)
            .filter_by(client_id=client_id)
            .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Reference checks
    # ------------------------------------------------------------------

    def product_is_referenced(self, product_id: int) -> bool:
        return self.session.query(SaleItem.id).filter_by(product_id=product_id).first() is not None

    def client_is_referenced(self, client_id: int) -> bool:
        if self.session.query(Sale.id).filter_by(client_id=client_id).first() is not None:
            return True
        return self.session.query(PaymentRecord.id).filter_by(client_id=client_id).first() is not None

    # ------------------------------------------------------------------
    # Full-table access (backup, listings)
    # ------------------------------------------------------------------

    def all_rows(self, model) -> list:
        order = model.key.asc() if model is Setting else model.id.asc()
        return self.session.query(model).order_by(order).all()

    def delete_all(self, model) -> int:
        return self.session.query(model).delete(synchronize_session=False)
