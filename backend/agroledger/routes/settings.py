# Overview: Flask API routes for flat key/value settings.

from flask import Blueprint, jsonify

from ..errors import LedgerError, ValidationError
from ..services import settings_service
from .common import error_response, get_engine, internal_error, json_body

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    return jsonify({"settings": settings_service.get_all(get_engine().store)}), 200


@settings_bp.put("/<key>")
def put_setting_route(key: str):
    """Body: {"value": "3.5"}"""
    try:
        data = json_body()
        if "value" not in data:
            raise ValidationError("value required")
        setting = settings_service.set_value(get_engine().store, key, data["value"])
        return jsonify({"setting": setting.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("update setting")
