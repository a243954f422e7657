# Overview: Flask API routes for clients; contact data CRUD, statements and debt refresh.

from flask import Blueprint, jsonify, request

from ..errors import LedgerError
from ..models import Client
from ..services import clients_service
from ..validation import CLIENT_POLICY, validate_payload
from .common import error_response, get_engine, internal_error, json_body

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
def list_clients_route():
    """
    Query params:
    - q: name fragment or exact CPF
    - with_debt: "true" to only list clients who owe money
    """
    search = request.args.get("q")
    with_debt = request.args.get("with_debt", "").lower() in {"1", "true", "yes"}
    clients = clients_service.list_clients(get_engine().store, search=search, with_debt=with_debt)
    return jsonify({"items": [c.to_dict() for c in clients], "count": len(clients)}), 200


@clients_bp.get("/<int:client_id>")
def get_client_route(client_id: int):
    try:
        store = get_engine().store
        client = store.get_client(client_id)
        data = client.to_dict()
        data["oldest_debt_days"] = clients_service.oldest_debt_days(store, client.id)
        return jsonify({"client": data}), 200
    except LedgerError as e:
        return error_response(e)


@clients_bp.post("")
def create_client_route():
    try:
        patch = validate_payload(model=Client, payload=json_body(), policy=CLIENT_POLICY, partial=False)
        client = clients_service.create_client(get_engine().store, patch)
        return jsonify({"client": client.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("create client")


@clients_bp.put("/<int:client_id>")
def update_client_route(client_id: int):
    try:
        patch = validate_payload(model=Client, payload=json_body(), policy=CLIENT_POLICY, partial=True)
        client = clients_service.update_client(get_engine().store, client_id, patch)
        return jsonify({"client": client.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("update client")


@clients_bp.delete("/<int:client_id>")
def delete_client_route(client_id: int):
    try:
        clients_service.delete_client(get_engine().store, client_id)
        return jsonify({"deleted": True, "client_id": client_id}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete client")


@clients_bp.get("/<int:client_id>/statement")
def client_statement_route(client_id: int):
    try:
        return jsonify(clients_service.client_statement(get_engine().store, client_id)), 200
    except LedgerError as e:
        return error_response(e)


@clients_bp.post("/<int:client_id>/recompute")
def recompute_client_route(client_id: int):
    """Rebuild the client's cached debt from its CREDIT sales."""
    try:
        client = get_engine().recompute_client_debt(client_id)
        return jsonify({"client": client.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("recompute client debt")
