from agroledger.services import debt_service


def test_recompute_overwrites_drifted_cache(engine, store, make_client, make_credit_sale):
    maria = make_client()
    make_credit_sale(maria, 3000, minute=0)
    make_credit_sale(maria, 1500, minute=5)

    maria.total_debt_cents = 99  # simulate drift
    store.session.commit()

    client = engine.recompute_client_debt(maria.id)

    assert client.total_debt_cents == 4500


def test_cash_sales_never_count_as_debt(engine, store, make_client, make_product):
    from agroledger.services.sales_service import ItemInput, SaleDraft

    maria = make_client()
    product = make_product(price_cents=2000)
    engine.create_sale(SaleDraft(type="CASH", client_id=maria.id, items=[ItemInput(product.id, 1)]))

    assert debt_service.sum_open_balance(store, maria.id) == 0


def test_recompute_all_reports_drifted_clients(engine, store, make_client, make_credit_sale):
    ok = make_client("Em dia")
    drifted = make_client("Desatualizado")
    make_credit_sale(ok, 1000)
    make_credit_sale(drifted, 2000)

    drifted.total_debt_cents = 0
    store.session.commit()

    assert engine.recompute_all_debts() == 1
    store.session.refresh(drifted)
    assert drifted.total_debt_cents == 2000
    assert engine.recompute_all_debts() == 0
