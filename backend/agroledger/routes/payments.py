# Overview: Flask API routes for client payments; parses input and returns JSON responses.

# backend/agroledger/routes/payments.py
"""
Payment API Routes

Payments belong to a client, not a sale: the amount is spread FIFO over the
client's open CREDIT sales and any surplus becomes client credit.
"""

from flask import Blueprint, jsonify, request

from ..errors import LedgerError, ValidationError
from ..models import PaymentRecord
from .common import error_response, get_engine, internal_error, json_body


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# QUERIES
# =============================================================================

@payments_bp.get("")
def list_payments_route():
    """List payment records newest first, optionally for one client."""
    client_id = request.args.get("client_id", type=int)
    store = get_engine().store
    if client_id is not None:
        payments = store.client_payments(client_id)
    else:
        payments = (
            store.session.query(PaymentRecord)
            .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
            .all()
        )
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200


# =============================================================================
# ALLOCATION / AMENDMENT
# =============================================================================

@payments_bp.post("")
def allocate_payment_route():
    """
    Record a client payment and allocate it oldest sale first.

    Request body:
    {
        "client_id": 7,
        "amount_cents": 4000
    }

    Returns:
        201: payment, per-sale allocations, credit added, new debt/credit
        400: amount not a positive integer
        404: client not found
        500: allocation stopped part way (data flagged for verification)
    """
    try:
        data = json_body()
        client_id = data.get("client_id")
        if isinstance(client_id, bool) or not isinstance(client_id, int):
            raise ValidationError("client_id (integer) required")
        result = get_engine().allocate_payment(client_id, data.get("amount_cents"))
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("allocate payment")


@payments_bp.put("/<int:payment_id>")
def edit_payment_route(payment_id: int):
    try:
        result = get_engine().edit_payment(payment_id, json_body().get("amount_cents"))
        return jsonify(result.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("edit payment")


@payments_bp.delete("/<int:payment_id>")
def delete_payment_route(payment_id: int):
    try:
        result = get_engine().delete_payment(payment_id)
        return jsonify({"deleted": True, **result.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete payment")
