# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/agroledger/routes/sales.py
"""
Sales API routes.

Create/edit/delete go through the ledger engine so stock, client debt and
items move together in one unit of work.
"""

from flask import Blueprint, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import sales_service
from .common import error_response, get_engine, internal_error, json_body


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    client_id = request.args.get("client_id", type=int)
    engine = get_engine()
    sales = sales_service.list_sales(engine.store, client_id=client_id)
    return jsonify({"items": [s.to_dict(include_items=True) for s in sales], "count": len(sales)}), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = get_engine().store.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except LedgerError as e:
        return error_response(e)


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale.

    Request body:
    {
        "type": "CREDIT",
        "client_id": 7,
        "items": [{"product_id": 3, "quantity": 2.5, "unit_price_cents": 1200}],
        "adjustment_cents": -500,
        "payment_method": "PIX",
        "apply_client_credit": true,
        "is_delivery": false
    }

    Returns:
        201: sale with items
        400: invalid draft
        404: client or product not found
        500: item write failed (data flagged for verification)
    """
    try:
        draft = sales_service.parse_draft(json_body())
        sale = get_engine().create_sale(draft)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("create sale")


@sales_bp.put("/<int:sale_id>")
def edit_sale_route(sale_id: int):
    """Replace items and adjustment. Both items and adjustment_cents are required."""
    try:
        data = json_body()
        if "adjustment_cents" not in data:
            raise ValidationError("adjustment_cents is required when editing a sale")
        items = sales_service.parse_items(data.get("items"))
        sale = get_engine().edit_sale(sale_id, items, data["adjustment_cents"])
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("edit sale")


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    try:
        get_engine().delete_sale(sale_id)
        return jsonify({"deleted": True, "sale_id": sale_id}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete sale")


@sales_bp.post("/<int:sale_id>/settle")
def settle_sale_route(sale_id: int):
    """Pay one CREDIT sale in full. Already-paid sales return settled=false."""
    try:
        result = get_engine().settle_sale(sale_id)
        if result is None:
            return jsonify({"settled": False, "sale_id": sale_id}), 200
        return jsonify({"settled": True, **result.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("settle sale")


@sales_bp.post("/<int:sale_id>/delivery")
def mark_delivery_route(sale_id: int):
    try:
        status = str(json_body().get("status") or "").upper()
        sale = get_engine().mark_delivery(sale_id, status)
        return jsonify({"sale": sale.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("update delivery status")
