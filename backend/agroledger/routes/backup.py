# Overview: Flask API routes for full-dataset backup export and restore.

# backend/agroledger/routes/backup.py
"""
Backup routes.

Import wipes every table before reloading, so it only runs with an explicit
?confirm=true on the request.
"""

from flask import Blueprint, jsonify, request

from ..errors import LedgerError, ValidationError
from .common import error_response, get_engine, internal_error, json_body

backup_bp = Blueprint("backup", __name__, url_prefix="/api/backup")


@backup_bp.get("/export")
def export_backup_route():
    try:
        return jsonify(get_engine().export_backup()), 200
    except Exception:
        return internal_error("export backup")


@backup_bp.post("/import")
def import_backup_route():
    """
    Replace the whole dataset with the posted backup document.

    Returns:
        200: per-table restored counts
        400: missing confirmation, missing/unknown version, malformed document
        500: restore failed part way (rolled back, data flagged for verification)
    """
    try:
        if request.args.get("confirm", "").lower() != "true":
            raise ValidationError("Backup import replaces all data; repeat with ?confirm=true")
        counts = get_engine().import_backup(json_body())
        return jsonify({"imported": counts}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("import backup")
