"""
FIFO settlement: allocation order, overflow to credit, idempotent settle,
payment edit/delete.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from agroledger.errors import ConsistencyDriftError, NotFoundError, ValidationError
from agroledger.models import PaymentRecord, Sale
from agroledger.services.debt_service import sum_open_balance


def _reload(store, sale):
    return store.get_sale(sale.id)


def _assert_debt_consistent(store, client):
    store.session.refresh(client)
    assert client.total_debt_cents == sum_open_balance(store, client.id)


# =============================================================================
# ALLOCATION SCENARIOS
# =============================================================================

def test_allocation_pays_oldest_sale_first(engine, store, make_client, make_credit_sale):
    maria = make_client()
    older = make_credit_sale(maria, 3000, minute=0)
    newer = make_credit_sale(maria, 5000, minute=10)

    result = engine.allocate_payment(maria.id, 6000)

    older, newer = _reload(store, older), _reload(store, newer)
    assert older.status == "PAID"
    assert older.remaining_balance_cents == 0
    assert newer.status == "PARTIAL"
    assert newer.remaining_balance_cents == 2000
    assert result.credit_added_cents == 0
    assert result.total_debt_cents == 2000
    assert [a.sale_id for a in result.allocations] == [older.id, newer.id]

    store.session.refresh(maria)
    assert maria.credit_cents == 0
    assert maria.total_debt_cents == 2000


def test_overpayment_settles_remaining_sale_and_goes_to_credit(engine, store, make_client, make_credit_sale):
    maria = make_client()
    older = make_credit_sale(maria, 3000, minute=0)
    newer = make_credit_sale(maria, 5000, minute=10)
    engine.allocate_payment(maria.id, 6000)

    result = engine.allocate_payment(maria.id, 2500)

    newer = _reload(store, newer)
    assert newer.status == "PAID"
    assert newer.remaining_balance_cents == 0
    assert _reload(store, older).status == "PAID"
    assert result.credit_added_cents == 500

    store.session.refresh(maria)
    assert maria.credit_cents == 500
    assert maria.total_debt_cents == 0


def test_fifo_orders_by_created_at_not_insert_order(engine, store, make_client, make_credit_sale):
    ana = make_client("Ana")
    late = make_credit_sale(ana, 1000, minute=30)
    early = make_credit_sale(ana, 1000, minute=0)
    middle = make_credit_sale(ana, 1000, minute=15)

    engine.allocate_payment(ana.id, 1500)

    assert _reload(store, early).remaining_balance_cents == 0
    assert _reload(store, middle).remaining_balance_cents == 500
    # A newer sale never moves while an older one still owes money
    assert _reload(store, late).remaining_balance_cents == 1000


def test_fifo_tie_on_created_at_broken_by_id(engine, store, make_client, make_credit_sale):
    ana = make_client("Ana")
    first = make_credit_sale(ana, 1000, minute=5)
    second = make_credit_sale(ana, 1000, minute=5)

    engine.allocate_payment(ana.id, 1000)

    assert _reload(store, first).status == "PAID"
    assert _reload(store, second).remaining_balance_cents == 1000


def test_payment_without_open_sales_becomes_credit(engine, store, make_client):
    joao = make_client("Joao")

    result = engine.allocate_payment(joao.id, 1000)

    assert result.allocations == []
    assert result.credit_added_cents == 1000
    assert result.payment.amount_cents == 1000
    store.session.refresh(joao)
    assert joao.credit_cents == 1000


@pytest.mark.parametrize("amount", [0, -500, 10.5, "100", True, None])
def test_non_positive_or_non_integer_amount_rejected_before_write(engine, store, make_client, amount):
    joao = make_client("Joao")

    with pytest.raises(ValidationError):
        engine.allocate_payment(joao.id, amount)

    assert store.session.query(PaymentRecord).count() == 0


def test_unknown_client_is_not_found(engine):
    with pytest.raises(NotFoundError):
        engine.allocate_payment(424242, 1000)


def test_write_failure_mid_walk_raises_drift_and_rolls_back(engine, store, make_client, make_credit_sale, monkeypatch):
    maria = make_client()
    older = make_credit_sale(maria, 3000, minute=0)
    make_credit_sale(maria, 5000, minute=10)

    real_flush = store.flush
    calls = {"n": 0}

    def flaky_flush():
        calls["n"] += 1
        # 1st: payment record, 2nd: older sale, 3rd: newer sale
        if calls["n"] == 3:
            raise SQLAlchemyError("disk I/O error")
        real_flush()

    monkeypatch.setattr(store, "flush", flaky_flush)

    with pytest.raises(ConsistencyDriftError) as excinfo:
        engine.allocate_payment(maria.id, 6000)

    assert excinfo.value.inconsistent is True
    assert excinfo.value.details["allocated"][0]["sale_id"] == older.id

    monkeypatch.setattr(store, "flush", real_flush)
    assert store.session.query(PaymentRecord).count() == 0
    assert _reload(store, older).remaining_balance_cents == 3000


# =============================================================================
# SETTLE ONE SALE
# =============================================================================

def test_settle_sale_pays_that_sale_out_of_order(engine, store, make_client, make_credit_sale):
    maria = make_client()
    older = make_credit_sale(maria, 3000, minute=0)
    newer = make_credit_sale(maria, 5000, minute=10)

    result = engine.settle_sale(newer.id)

    assert result.payment.amount_cents == 5000
    assert _reload(store, newer).status == "PAID"
    assert _reload(store, older).remaining_balance_cents == 3000
    store.session.refresh(maria)
    assert maria.total_debt_cents == 3000


def test_settle_sale_is_idempotent(engine, store, make_client, make_credit_sale):
    maria = make_client()
    sale = make_credit_sale(maria, 3000)

    engine.settle_sale(sale.id)
    payments_before = store.session.query(PaymentRecord).count()

    assert engine.settle_sale(sale.id) is None
    assert store.session.query(PaymentRecord).count() == payments_before
    assert _reload(store, sale).remaining_balance_cents == 0


def test_settle_cash_sale_is_a_no_op(engine, store, make_product):
    from agroledger.services.sales_service import ItemInput, SaleDraft

    product = make_product()
    sale = engine.create_sale(SaleDraft(type="CASH", items=[ItemInput(product.id, 1)]))

    assert engine.settle_sale(sale.id) is None
    assert store.session.query(PaymentRecord).count() == 0
    assert _reload(store, sale).status == "PAID"


# =============================================================================
# PAYMENT AMENDMENT
# =============================================================================

def test_edit_payment_up_allocates_delta_fifo(engine, store, make_client, make_credit_sale):
    maria = make_client()
    older = make_credit_sale(maria, 3000, minute=0)
    newer = make_credit_sale(maria, 5000, minute=10)
    payment = engine.allocate_payment(maria.id, 3000).payment

    result = engine.edit_payment(payment.id, 9000)

    assert _reload(store, older).status == "PAID"
    assert _reload(store, newer).status == "PAID"
    assert result.credit_added_cents == 1000
    assert store.get_payment(payment.id).amount_cents == 9000
    store.session.refresh(maria)
    assert maria.credit_cents == 1000
    assert maria.total_debt_cents == 0


def test_edit_payment_down_reopens_newest_paid_sale(engine, store, make_client, make_credit_sale):
    maria = make_client()
    older = make_credit_sale(maria, 3000, minute=0)
    newer = make_credit_sale(maria, 5000, minute=10)
    payment = engine.allocate_payment(maria.id, 6000).payment

    engine.edit_payment(payment.id, 3000)

    older, newer = _reload(store, older), _reload(store, newer)
    assert older.status == "PAID"
    assert newer.remaining_balance_cents == 5000
    assert newer.status == "PENDING"
    _assert_debt_consistent(store, maria)
    assert maria.total_debt_cents == 5000


def test_edit_payment_down_takes_credit_back_first(engine, store, make_client, make_credit_sale):
    maria = make_client()
    sale = make_credit_sale(maria, 3000)
    payment = engine.allocate_payment(maria.id, 4000).payment  # 1000 to credit

    engine.edit_payment(payment.id, 3500)

    store.session.refresh(maria)
    assert maria.credit_cents == 500
    assert _reload(store, sale).status == "PAID"


def test_edit_payment_down_by_one_cent_on_paid_sale_is_reported_unreversed(engine, store, make_client, make_credit_sale):
    maria = make_client()
    sale = make_credit_sale(maria, 3000)
    payment = engine.allocate_payment(maria.id, 3000).payment

    result = engine.edit_payment(payment.id, 2999)

    sale = _reload(store, sale)
    assert sale.status == "PAID"
    assert sale.remaining_balance_cents == 0
    assert result.unreversed_cents == 1
    _assert_debt_consistent(store, maria)


def test_edit_payment_down_by_one_cent_reopens_partial_sale(engine, store, make_client, make_credit_sale):
    maria = make_client()
    sale = make_credit_sale(maria, 3000)
    payment = engine.allocate_payment(maria.id, 1000).payment

    result = engine.edit_payment(payment.id, 999)

    sale = _reload(store, sale)
    assert sale.remaining_balance_cents == 2001
    assert sale.status == "PARTIAL"
    assert result.unreversed_cents == 0
    store.session.refresh(maria)
    assert maria.total_debt_cents == 2001


def test_delete_payment_reopens_sales_and_clears_credit(engine, store, make_client, make_credit_sale):
    maria = make_client()
    older = make_credit_sale(maria, 3000, minute=0)
    newer = make_credit_sale(maria, 5000, minute=10)
    payment = engine.allocate_payment(maria.id, 9000).payment

    engine.delete_payment(payment.id)

    assert store.session.query(PaymentRecord).count() == 0
    assert _reload(store, older).status == "PENDING"
    assert _reload(store, newer).status == "PENDING"
    store.session.refresh(maria)
    assert maria.credit_cents == 0
    assert maria.total_debt_cents == 8000


def test_credit_draw_record_cannot_be_edited(engine, store, make_client, make_product):
    from agroledger.services.sales_service import ItemInput, SaleDraft

    maria = make_client(credit_cents=1000)
    product = make_product(price_cents=3000)
    engine.create_sale(SaleDraft(
        type="CREDIT", client_id=maria.id, items=[ItemInput(product.id, 1)], apply_client_credit=True,
    ))
    draw = store.session.query(PaymentRecord).filter_by(used_credit=True).one()

    with pytest.raises(ValidationError):
        engine.edit_payment(draw.id, 500)


def test_debt_matches_sum_of_balances_after_mixed_operations(engine, store, make_client, make_credit_sale):
    maria = make_client()
    a = make_credit_sale(maria, 3000, minute=0)
    make_credit_sale(maria, 5000, minute=10)
    make_credit_sale(maria, 1234, minute=20)

    p1 = engine.allocate_payment(maria.id, 4100).payment
    engine.settle_sale(a.id)
    engine.edit_payment(p1.id, 2000)
    engine.allocate_payment(maria.id, 777)
    engine.delete_payment(p1.id)

    _assert_debt_consistent(store, maria)
    for sale in store.session.query(Sale).all():
        assert 0 <= sale.remaining_balance_cents <= sale.final_total_cents
        assert (sale.status == "PAID") == (sale.remaining_balance_cents <= 1)
