# Overview: Flask API routes for operating expenses.

from flask import Blueprint, jsonify, request

from ..errors import LedgerError, ValidationError
from ..models import Expense
from ..services import expenses_service
from ..validation import EXPENSE_POLICY, enforce_rules_expense, validate_payload
from agroledger.time_utils import parse_iso_datetime
from .common import error_response, get_engine, internal_error, json_body

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@expenses_bp.get("")
def list_expenses_route():
    """
    Query params:
    - start, end: ISO-8601 bounds (inclusive)
    - type: FIXED | VARIABLE | CARD_FEE
    """
    try:
        expenses = expenses_service.list_expenses(
            get_engine().store,
            start=_date_arg("start"),
            end=_date_arg("end"),
            expense_type=request.args.get("type"),
        )
        total = sum(e.amount_cents for e in expenses)
        return jsonify({"items": [e.to_dict() for e in expenses], "count": len(expenses), "total_cents": total}), 200
    except LedgerError as e:
        return error_response(e)


@expenses_bp.post("")
def create_expense_route():
    try:
        patch = validate_payload(model=Expense, payload=json_body(), policy=EXPENSE_POLICY, partial=False)
        enforce_rules_expense(patch)
        expense = expenses_service.create_expense(get_engine().store, patch)
        return jsonify({"expense": expense.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("create expense")


@expenses_bp.delete("/<int:expense_id>")
def delete_expense_route(expense_id: int):
    try:
        expenses_service.delete_expense(get_engine().store, expense_id)
        return jsonify({"deleted": True, "expense_id": expense_id}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete expense")
