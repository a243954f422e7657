# Overview: Shared helpers for the ledger blueprints (engine access, error mapping).

from flask import current_app, jsonify, request

from ..errors import INCONSISTENT_MESSAGE, LedgerError
from ..extensions import db
from ..services.ledger_engine import LedgerEngine


def get_engine() -> LedgerEngine:
    """Engine bound to the request's database session."""
    return LedgerEngine.for_session(db.session, current_app.config)


def json_body():
    data = request.get_json(silent=True)
    return data if data is not None else {}


def error_response(exc: LedgerError):
    """
    Map a ledger error to a JSON response.

    Errors flagged inconsistent (partial write, consistency drift) carry the
    "please verify" message; the original message moves into details.
    """
    payload = exc.to_dict()
    if exc.inconsistent:
        current_app.logger.error("Ledger operation left data possibly inconsistent: %s", exc.message)
        payload["details"] = {**payload.get("details", {}), "reason": exc.message}
        payload["error"] = INCONSISTENT_MESSAGE
    return jsonify(payload), exc.status_code


def internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500
