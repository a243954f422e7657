"""HTTP surface: happy paths and ledger error -> status code mapping."""

from sqlalchemy.exc import SQLAlchemyError

from agroledger.errors import INCONSISTENT_MESSAGE
from agroledger.services import sales_service


def test_health(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json["checks"]["database"]["status"] == "healthy"


def test_credit_sale_and_payment_flow(client, db_session, make_client, make_product):
    maria = make_client()
    product = make_product(price_cents=3000)

    created = client.post('/api/sales', json={
        "type": "CREDIT",
        "client_id": maria.id,
        "items": [{"product_id": product.id, "quantity": 2}],
        "adjustment_cents": -1000,
    })
    assert created.status_code == 201
    sale = created.json["sale"]
    assert sale["final_total_cents"] == 5000
    assert sale["status"] == "PENDING"
    assert len(sale["items"]) == 1

    paid = client.post('/api/payments', json={"client_id": maria.id, "amount_cents": 6000})
    assert paid.status_code == 201
    assert paid.json["credit_added_cents"] == 1000
    assert paid.json["total_debt_cents"] == 0

    statement = client.get(f'/api/clients/{maria.id}/statement')
    assert statement.status_code == 200
    assert len(statement.json["entries"]) == 2


def test_validation_error_is_400(client, db_session, make_client):
    maria = make_client()
    response = client.post('/api/payments', json={"client_id": maria.id, "amount_cents": 0})
    assert response.status_code == 400
    assert "error" in response.json


def test_not_found_is_404(client, db_session):
    assert client.get('/api/sales/999').status_code == 404
    assert client.post('/api/sales/999/settle').status_code == 404


def test_referenced_product_delete_is_409(client, db_session, make_product):
    product = make_product()
    client.post('/api/sales', json={"type": "CASH", "items": [{"product_id": product.id, "quantity": 1}]})

    response = client.delete(f'/api/products/{product.id}')
    assert response.status_code == 409


def test_duplicate_barcode_is_409(client, db_session):
    first = client.post('/api/products', json={"name": "Racao", "price_cents": 100, "barcode": "111"})
    assert first.status_code == 201
    second = client.post('/api/products', json={"name": "Racao 2", "price_cents": 100, "barcode": "111"})
    assert second.status_code == 409


def test_engine_owned_client_fields_not_writable(client, db_session):
    response = client.post('/api/clients', json={"name": "Maria", "credit_cents": 100000})
    assert response.status_code == 400


def test_partial_write_is_500_flagged_inconsistent(client, db_session, make_product, monkeypatch):
    product = make_product()

    def broken_insert(*args, **kwargs):
        raise SQLAlchemyError("boom")

    monkeypatch.setattr(sales_service, "_insert_items", broken_insert)

    response = client.post('/api/sales', json={"type": "CASH", "items": [{"product_id": product.id, "quantity": 1}]})

    assert response.status_code == 500
    assert response.json["inconsistent"] is True
    assert response.json["error"] == INCONSISTENT_MESSAGE


def test_edit_sale_requires_adjustment(client, db_session, make_product):
    product = make_product()
    created = client.post('/api/sales', json={"type": "CASH", "items": [{"product_id": product.id, "quantity": 1}]})
    sale_id = created.json["sale"]["id"]

    response = client.put(f'/api/sales/{sale_id}', json={"items": [{"product_id": product.id, "quantity": 2}]})
    assert response.status_code == 400

    response = client.put(f'/api/sales/{sale_id}', json={
        "items": [{"product_id": product.id, "quantity": 2}],
        "adjustment_cents": 0,
    })
    assert response.status_code == 200
    assert response.json["sale"]["final_total_cents"] == 2000


def test_settle_twice_reports_no_op(client, db_session, make_client, make_credit_sale):
    maria = make_client()
    sale = make_credit_sale(maria, 2500)

    first = client.post(f'/api/sales/{sale.id}/settle')
    second = client.post(f'/api/sales/{sale.id}/settle')

    assert first.json["settled"] is True
    assert second.json["settled"] is False


def test_backup_import_requires_confirmation(client, db_session):
    exported = client.get('/api/backup/export')
    assert exported.status_code == 200

    refused = client.post('/api/backup/import', json=exported.json)
    assert refused.status_code == 400

    accepted = client.post('/api/backup/import?confirm=true', json=exported.json)
    assert accepted.status_code == 200


def test_settings_put_and_get(client, db_session):
    assert client.put('/api/settings/credit_fee', json={"value": "4.2"}).status_code == 200
    assert client.get('/api/settings').json["settings"] == {"credit_fee": "4.2"}


def test_cors_headers_only_for_configured_origins(client, db_session):
    allowed = client.get('/health', headers={"Origin": "http://localhost:5173"})
    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
    assert "PUT" in allowed.headers["Access-Control-Allow-Methods"]

    foreign = client.get('/health', headers={"Origin": "http://evil.example"})
    assert "Access-Control-Allow-Origin" not in foreign.headers
