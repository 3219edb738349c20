# Overview: Flask API routes for sales invoices; parses input and returns JSON responses.

"""
Sales invoice API routes

POST is the only way to create an invoice: the client submits product ids
and quantities, the server prices, checks stock and commits atomically.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import current_actor, require_auth
from ..errors import BillingError, RateLimitUnavailableError, StockConflictError, error_response
from ..services import invoice_service, sales_service
from ..services.sale_store import SqlSaleStore
from ..services.sales_service import SalePolicy


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create a sales invoice.

    Body: {"business_id"?: int, "invoice": {id, invoice_no, date?,
    customer_name, status, tax_rate?, items: [{product_id, quantity} |
    {product_name, quantity}]}}

    A retry with an already-committed invoice id gets the same 201 and
    body as the first commit.
    """
    try:
        result = sales_service.create_sale(
            SqlSaleStore(),
            current_actor(),
            request.get_json(silent=True),
            policy=SalePolicy.from_config(current_app.config),
        )
        return jsonify(result.to_dict()), 201

    except RateLimitUnavailableError as e:
        current_app.logger.warning("Sale denied for user %s: %s", g.current_user.id, e)
        return error_response(e)
    except StockConflictError as e:
        current_app.logger.warning("Sale commit retries exhausted for user %s: %s", g.current_user.id, e.details)
        return error_response(e)
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    try:
        invoices = invoice_service.list_invoices(g.business_id, status=request.args.get("status"))
        return jsonify({
            "items": [inv.to_dict(include_lines=True) for inv in invoices],
            "count": len(invoices),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@sales_bp.get("/<invoice_id>")
@require_auth
def get_sale_route(invoice_id: str):
    try:
        invoice = invoice_service.get_invoice(g.business_id, invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_lines=True)}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@sales_bp.patch("/<invoice_id>/status")
@require_auth
def update_sale_status_route(invoice_id: str):
    """Toggle Pending <-> Paid. Body: {"status": "Paid" | "Pending"}"""
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.update_invoice_status(
            g.business_id, invoice_id, data.get("status"), current_actor()
        )
        return jsonify({"invoice": invoice.to_dict()}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@sales_bp.delete("/<invoice_id>")
@require_auth
def delete_sale_route(invoice_id: str):
    """Delete an invoice, restoring stock and reversing any receivable."""
    try:
        invoice_service.delete_invoice(g.business_id, invoice_id, current_actor())
        return jsonify({"deleted": True, "invoice_id": invoice_id}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500
