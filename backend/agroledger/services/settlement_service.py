# Overview: Service-layer operations for client payments; FIFO settlement of credit sales.

"""
Settlement Allocator

WHY: Clients buying on credit pay in lump sums that are not tied to any
particular sale. Money received is spread over their open CREDIT sales,
oldest debt first, and anything left over becomes prepaid client credit.

DESIGN PRINCIPLES:
- A PaymentRecord for the full amount is written before any allocation;
  it is the record of money received no matter how it was spread.
- FIFO is a hard ordering rule: (created_at, id) ascending. A newer sale's
  balance never moves while an older sale still has a balance.
- Overpayment is never lost: it is added to client.credit_cents.
- After every allocation/amendment the client's total debt is recomputed
  from the sales (debt_service), never adjusted arithmetically.
- A failed per-sale write stops the walk at once and raises
  ConsistencyDriftError; the unit of work is rolled back, nothing retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConsistencyDriftError, LedgerError, ValidationError
from ..models import Client, PaymentRecord, Sale
from ..models.sales import (
    PAID_TOLERANCE_CENTS,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_PENDING,
)
from agroledger.time_utils import utcnow
from .concurrency import run_with_retry
from .debt_service import recompute_client_debt
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class SaleAllocation:
    sale_id: int
    applied_cents: int
    remaining_balance_cents: int
    status: str

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "applied_cents": self.applied_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "status": self.status,
        }


@dataclass
class AllocationResult:
    payment: PaymentRecord | None
    allocations: list[SaleAllocation] = field(default_factory=list)
    credit_added_cents: int = 0
    unreversed_cents: int = 0
    total_debt_cents: int = 0
    credit_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict() if self.payment else None,
            "allocations": [a.to_dict() for a in self.allocations],
            "credit_added_cents": self.credit_added_cents,
            "unreversed_cents": self.unreversed_cents,
            "total_debt_cents": self.total_debt_cents,
            "credit_cents": self.credit_cents,
        }


def status_for_balance(remaining_cents: int) -> str:
    """PAID at or below tolerance, otherwise PARTIAL."""
    if remaining_cents <= PAID_TOLERANCE_CENTS:
        return STATUS_PAID
    return STATUS_PARTIAL


def set_sale_balance(sale: Sale, remaining_cents: int) -> None:
    """Write balance and status together; a settled sale is stored at exactly 0."""
    status = status_for_balance(remaining_cents)
    sale.remaining_balance_cents = 0 if status == STATUS_PAID else remaining_cents
    sale.status = status


def validate_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer number of cents")
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")
    return amount_cents


# =============================================================================
# FIFO CORE (caller owns the transaction)
# =============================================================================

def _allocate_fifo_locked(store: LedgerStore, client: Client, amount_cents: int) -> tuple[list[SaleAllocation], int]:
    """
    Walk the client's open CREDIT sales oldest first, paying each down.

    Returns (allocations, leftover_cents). Leftover is not yet credited.
    """
    remaining = amount_cents
    allocations: list[SaleAllocation] = []

    for sale in store.open_credit_sales(client.id, lock=True):
        if remaining <= 0:
            break

        pay = min(sale.remaining_balance_cents, remaining)
        set_sale_balance(sale, sale.remaining_balance_cents - pay)

        try:
            store.flush()
        except (SQLAlchemyError, LedgerError) as exc:
            logger.critical(
                "Allocation for client %s stopped at sale %s; ledger may be inconsistent",
                client.id, sale.id, exc_info=True,
            )
            raise ConsistencyDriftError(
                "Payment allocation failed part way through",
                details={"client_id": client.id, "sale_id": sale.id, "allocated": [a.to_dict() for a in allocations]},
            ) from exc

        allocations.append(SaleAllocation(sale.id, pay, sale.remaining_balance_cents, sale.status))
        remaining -= pay

    return allocations, remaining


def _unapply_locked(store: LedgerStore, client: Client, amount_cents: int, *, restore_credit: bool = False) -> int:
    """
    Take back money previously applied for a client.

    New-money payments give back client credit first, then re-open the most
    recently paid CREDIT sales (newest first). Credit-draw records
    (restore_credit=True) re-open sales and return the whole amount to credit.

    Returns the amount that could not be taken back (0 when fully reversed).
    """
    remaining = amount_cents

    if restore_credit:
        client.credit_cents += amount_cents
    else:
        from_credit = min(client.credit_cents, remaining)
        client.credit_cents -= from_credit
        remaining -= from_credit

    for sale in store.reopenable_credit_sales(client.id):
        if remaining <= 0:
            break
        room = sale.final_total_cents - sale.remaining_balance_cents
        reopen = min(room, remaining)
        if sale.remaining_balance_cents + reopen <= PAID_TOLERANCE_CENTS:
            # Would still read as PAID and be written back as 0
            continue
        set_sale_balance(sale, sale.remaining_balance_cents + reopen)
        if sale.remaining_balance_cents >= sale.final_total_cents:
            sale.status = STATUS_PENDING
        remaining -= reopen

    if remaining > 0:
        logger.warning("Client %s: %s cents could not be taken back from sales", client.id, remaining)
    return remaining


def _finish_for_client(store: LedgerStore, client: Client, result: AllocationResult) -> AllocationResult:
    recompute_client_debt(store, client.id, touch=True)
    result.total_debt_cents = client.total_debt_cents
    result.credit_cents = client.credit_cents
    return result


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def allocate_payment(store: LedgerStore, client_id: int, amount_cents: int) -> AllocationResult:
    """
    Record a client payment and spread it across open CREDIT sales, oldest first.

    Raises:
        ValidationError: amount not a positive integer (before any write)
        NotFoundError: client does not exist
        ConsistencyDriftError: a per-sale write failed mid-walk
    """
    validate_amount(amount_cents)

    def _op():
        with store.atomic():
            client = store.lock_client(client_id)

            payment = store.add(PaymentRecord(
                client_id=client.id,
                amount_cents=amount_cents,
                used_credit=False,
                created_at=utcnow(),
            ))
            store.flush()

            allocations, leftover = _allocate_fifo_locked(store, client, amount_cents)
            if leftover > 0:
                client.credit_cents += leftover

            result = AllocationResult(payment=payment, allocations=allocations, credit_added_cents=leftover)
            _finish_for_client(store, client, result)

        logger.info(
            "Payment %s for client %s: %s cents over %d sale(s), %s cents to credit",
            payment.id, client_id, amount_cents, len(allocations), leftover,
        )
        return result

    return run_with_retry(_op, session=store.session, attempts=store.retry_attempts)


def settle_sale(store: LedgerStore, sale_id: int) -> AllocationResult | None:
    """
    Pay one specific CREDIT sale in full, bypassing FIFO order.

    Idempotent: a sale already PAID (every CASH sale included) is left
    untouched and None is returned (no payment record, no balance change).
    """
    def _op():
        with store.atomic():
            sale = store.get_sale(sale_id, lock=True)
            if sale.status == STATUS_PAID:
                return None
            if not sale.is_credit or sale.client_id is None:
                raise ValidationError("Only CREDIT sales with a client can be settled")

            client = store.lock_client(sale.client_id)
            amount = sale.remaining_balance_cents

            payment = store.add(PaymentRecord(
                client_id=client.id,
                amount_cents=amount,
                used_credit=False,
                created_at=utcnow(),
            ))
            set_sale_balance(sale, 0)
            store.flush()

            result = AllocationResult(
                payment=payment,
                allocations=[SaleAllocation(sale.id, amount, 0, sale.status)],
            )
            _finish_for_client(store, client, result)

        logger.info("Sale %s settled directly with payment %s (%s cents)", sale_id, payment.id, amount)
        return result

    return run_with_retry(_op, session=store.session, attempts=store.retry_attempts)


def edit_payment(store: LedgerStore, payment_id: int, new_amount_cents: int) -> AllocationResult:
    """
    Change the amount of a recorded payment.

    The difference is applied as a targeted balance change: an increase is
    spread FIFO (overflow to credit), a decrease is taken back from credit
    and then from the most recently paid sales. Debt is then recomputed.
    """
    validate_amount(new_amount_cents)

    def _op():
        with store.atomic():
            payment = store.get_payment(payment_id, lock=True)
            if payment.used_credit:
                raise ValidationError("Credit-draw records cannot be edited; delete them instead")

            client = store.lock_client(payment.client_id)
            delta = new_amount_cents - payment.amount_cents
            result = AllocationResult(payment=payment)

            if delta > 0:
                allocations, leftover = _allocate_fifo_locked(store, client, delta)
                if leftover > 0:
                    client.credit_cents += leftover
                result.allocations = allocations
                result.credit_added_cents = leftover
            elif delta < 0:
                result.unreversed_cents = _unapply_locked(store, client, -delta)

            payment.amount_cents = new_amount_cents
            _finish_for_client(store, client, result)

        logger.info("Payment %s amount changed by %s cents", payment_id, delta)
        return result

    return run_with_retry(_op, session=store.session, attempts=store.retry_attempts)


def delete_payment(store: LedgerStore, payment_id: int) -> AllocationResult:
    """Remove a payment record and take its money back out of the client's sales."""
    def _op():
        with store.atomic():
            payment = store.get_payment(payment_id, lock=True)
            client = store.lock_client(payment.client_id)

            unreversed = _unapply_locked(store, client, payment.amount_cents, restore_credit=payment.used_credit)
            store.delete(payment)
            store.flush()

            result = AllocationResult(payment=None, unreversed_cents=unreversed)
            _finish_for_client(store, client, result)

        logger.info("Payment %s deleted for client %s", payment_id, client.id)
        return result

    return run_with_retry(_op, session=store.session, attempts=store.retry_attempts)


def draw_client_credit_locked(store: LedgerStore, client: Client, sale: Sale) -> int:
    """
    Absorb available client credit into a fresh CREDIT sale.

    Writes a used_credit PaymentRecord for the amount drawn. Caller owns the
    transaction and the debt recomputation.
    """
    drawn = min(client.credit_cents, sale.remaining_balance_cents)
    if drawn <= 0:
        return 0

    client.credit_cents -= drawn
    set_sale_balance(sale, sale.remaining_balance_cents - drawn)
    store.add(PaymentRecord(
        client_id=client.id,
        amount_cents=drawn,
        used_credit=True,
        created_at=utcnow(),
    ))
    return drawn
