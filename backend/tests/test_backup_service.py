"""Backup export/import: round trip, version gate, rollback on failed restore."""

from datetime import datetime

import pytest

from agroledger.errors import ConsistencyDriftError, ValidationError
from agroledger.models import Client, Product, Sale, Setting
from agroledger.services import settings_service
from agroledger.services.sales_service import ItemInput, SaleDraft


def _strip_volatile(document):
    """Drop fields that legitimately change across a restore."""
    out = {}
    for key, rows in document.items():
        if key == "timestamp":
            continue
        if isinstance(rows, list):
            out[key] = [{k: v for k, v in row.items() if k != "version_id"} for row in rows]
        else:
            out[key] = rows
    return out


@pytest.fixture
def populated(engine, store, make_client, make_product, make_credit_sale):
    maria = make_client("Maria", phone="11 99999-0000")
    feed = make_product(name="Racao", price_cents=1500, stock=30, barcode="7890000000011")
    make_credit_sale(maria, 3000, minute=0, product=feed)
    make_credit_sale(maria, 5000, minute=10, product=feed)
    engine.create_sale(SaleDraft(type="CASH", items=[ItemInput(feed.id, 2)], payment_method="DEBIT_CARD"))
    engine.allocate_payment(maria.id, 6000)
    settings_service.set_value(store, "debit_fee", "2")
    return maria


def test_export_has_every_table_and_version(engine, populated):
    document = engine.export_backup()

    assert document["version"] == "2.0"
    assert document["timestamp"].endswith("Z")
    for key in ("clients", "products", "sales", "saleItems", "expenses", "payments", "settings"):
        assert isinstance(document[key], list)
    assert len(document["sales"]) == 3
    assert len(document["saleItems"]) == 3
    assert document["settings"] == [
        {"key": "debit_fee", "value": "2", "updated_at": document["settings"][0]["updated_at"]}
    ]


def test_round_trip_reproduces_dataset(engine, store, populated):
    before = engine.export_backup()

    counts = engine.import_backup(before)
    after = engine.export_backup()

    assert counts["sales"] == 3
    assert _strip_volatile(after) == _strip_volatile(before)


def test_import_replaces_existing_rows(engine, store, populated, make_client):
    snapshot = engine.export_backup()
    make_client("Cliente novo")

    engine.import_backup(snapshot)

    names = sorted(c.name for c in store.session.query(Client).all())
    assert names == ["Maria"]


def test_restored_ids_are_preserved(engine, store, populated):
    snapshot = engine.export_backup()
    sale_ids = sorted(s["id"] for s in snapshot["sales"])

    engine.import_backup(snapshot)

    assert sorted(s.id for s in store.session.query(Sale).all()) == sale_ids


@pytest.mark.parametrize("version", [None, "", "1.0", "3.0"])
def test_missing_or_unknown_version_rejected_before_any_write(engine, store, populated, version):
    document = engine.export_backup()
    if version is None:
        del document["version"]
    else:
        document["version"] = version

    with pytest.raises(ValidationError):
        engine.import_backup(document)

    assert store.session.query(Sale).count() == 3


def test_malformed_table_rejected(engine):
    with pytest.raises(ValidationError):
        engine.import_backup({"version": "2.0", "clients": {"id": 1}})


def test_missing_arrays_default_to_empty(engine, store, populated):
    engine.import_backup({"version": "2.0", "clients": [{"id": 5, "name": "So cliente"}]})

    assert store.session.query(Client).count() == 1
    assert store.session.query(Product).count() == 0
    assert store.session.query(Setting).count() == 0


def test_failed_restore_rolls_back_and_flags_drift(engine, store, populated):
    document = engine.export_backup()
    # Sale pointing at a client that is not in the document
    document["sales"][0]["client_id"] = 777777

    with pytest.raises(ConsistencyDriftError) as excinfo:
        engine.import_backup(document)

    assert excinfo.value.inconsistent is True
    assert excinfo.value.details["step"] == "sales"
    # Original dataset is intact
    assert store.session.query(Sale).count() == 3
    assert store.session.query(Client).one().name == "Maria"


def test_restore_keeps_sub_second_created_at_and_fifo_order(engine, store, make_client, make_product):
    maria = make_client()
    product = make_product(price_cents=1000)
    # Inserted first but stamped later within the same second
    later = engine.create_sale(SaleDraft(
        type="CREDIT", client_id=maria.id, items=[ItemInput(product.id, 1)],
        created_at=datetime(2026, 3, 1, 9, 0, 0, 900000),
    ))
    earlier = engine.create_sale(SaleDraft(
        type="CREDIT", client_id=maria.id, items=[ItemInput(product.id, 1)],
        created_at=datetime(2026, 3, 1, 9, 0, 0, 100000),
    ))
    fifo_ids = [earlier.id, later.id]
    client_id = maria.id
    assert [s.id for s in store.open_credit_sales(client_id)] == fifo_ids

    engine.import_backup(engine.export_backup())
    store.session.expire_all()

    restored = store.open_credit_sales(client_id)
    assert [s.id for s in restored] == fifo_ids
    assert [s.created_at.microsecond for s in restored] == [100000, 900000]

    result = engine.allocate_payment(client_id, 1000)
    assert [a.sale_id for a in result.allocations] == fifo_ids[:1]
