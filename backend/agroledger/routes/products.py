# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/agroledger/routes/products.py
"""
Product management routes.

Payloads go through the validation policy layer; stock and price
coercion happen there, barcode uniqueness and delete protection in the
catalog service.
"""
from flask import Blueprint, jsonify, request

from ..errors import LedgerError
from ..models import Product
from ..services import catalog_service
from ..validation import PRODUCT_POLICY, enforce_rules_product, validate_payload
from .common import error_response, get_engine, internal_error, json_body

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - q: name fragment or exact barcode
    """
    products = catalog_service.list_products(get_engine().store, search=request.args.get("q"))
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/low-stock")
def low_stock_route():
    products = catalog_service.low_stock_products(get_engine().store)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = get_engine().store.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@products_bp.post("")
def create_product_route():
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(get_engine().store, patch)
        return jsonify({"product": product.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("create product")


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(get_engine().store, product_id, patch)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("update product")


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """
    Returns:
        200: deleted
        404: not found
        409: product appears on existing sales
    """
    try:
        catalog_service.delete_product(get_engine().store, product_id)
        return jsonify({"deleted": True, "product_id": product_id}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete product")
