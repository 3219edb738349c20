# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Catalog routes. Scoped to the caller's business (g.business_id, set by
@require_auth).

Stock is read-only here: it moves through sales, purchases and invoice
deletion only.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import current_actor, require_auth
from ..errors import BillingError, error_response
from ..services import products_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        page, per_page = products_service.parse_page_args(request.args)
        return jsonify(products_service.list_products(g.business_id, page=page, per_page=per_page)), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@products_bp.get("/<product_id>")
@require_auth
def get_product(product_id: str):
    try:
        product = products_service.get_product(g.business_id, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@products_bp.post("")
@require_auth
def create_product():
    try:
        product = products_service.create_product(
            g.business_id, request.get_json(silent=True), current_actor()
        )
        return jsonify({"product": product.to_dict()}), 201
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@products_bp.patch("/<product_id>")
@require_auth
def update_product(product_id: str):
    try:
        product = products_service.update_product(
            g.business_id, product_id, request.get_json(silent=True), current_actor()
        )
        return jsonify({"product": product.to_dict()}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500
