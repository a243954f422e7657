"""Stock reconciler: tracked products move, everything else is left alone."""

from types import SimpleNamespace

import pytest

from agroledger.services import stock_service


def _line(product_id, quantity):
    return SimpleNamespace(product_id=product_id, quantity=quantity)


def test_decrement_and_increment_tracked_product(store, make_product, db_session):
    feed = make_product(name="Racao 15kg", stock=10)

    result = stock_service.apply_items(store, [_line(feed.id, 2.5)], stock_service.DECREMENT)
    assert result.adjusted == [feed.id]
    assert feed.stock == pytest.approx(7.5)

    stock_service.apply_items(store, [_line(feed.id, 2.5)], stock_service.INCREMENT)
    assert feed.stock == pytest.approx(10)


def test_untracked_product_is_not_adjusted(store, make_product):
    service = make_product(name="Banho e tosa")  # no stock given -> untracked

    result = stock_service.apply_items(store, [_line(service.id, 1)], stock_service.DECREMENT)

    assert result.adjusted == []
    assert result.untracked == [service.id]
    assert service.stock is None


def test_tracked_product_without_stock_count_is_left_alone(store, make_product, db_session):
    product = make_product(name="Coleira")
    product.track_stock = True
    db_session.commit()
    db_session.refresh(product)
    assert product.stock is None

    result = stock_service.apply_items(store, [_line(product.id, 1)], stock_service.DECREMENT)

    assert result.untracked == [product.id]
    assert product.stock is None


def test_missing_product_is_skipped_and_rest_processed(store, make_product):
    seed = make_product(name="Semente milho", stock=4)

    result = stock_service.apply_items(
        store,
        [_line(999999, 1), _line(seed.id, 1)],
        stock_service.DECREMENT,
    )

    assert result.skipped == [999999]
    assert result.adjusted == [seed.id]
    assert seed.stock == pytest.approx(3)


def test_stock_may_go_negative(store, make_product):
    product = make_product(stock=1)
    stock_service.apply_items(store, [_line(product.id, 3)], stock_service.DECREMENT)
    assert product.stock == pytest.approx(-2)


def test_invalid_direction_rejected(store):
    with pytest.raises(ValueError):
        stock_service.apply_items(store, [], "SIDEWAYS")
