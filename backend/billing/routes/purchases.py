# Overview: Flask API routes for purchase bills and expenses; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import current_actor, require_auth
from ..errors import BillingError, error_response
from ..services import expense_service, purchase_service

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")
expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    """
    Post a purchase bill. Body: {id, invoice_no, date?, party_name, due_in?,
    status: Paid|Unpaid, items: [{product_id?, name?, quantity, rate_cents}]}

    201 with the stored purchase; re-posting the same id returns it again
    with "created": false.
    """
    try:
        purchase, created = purchase_service.create_purchase(
            g.business_id, request.get_json(silent=True), current_actor()
        )
        return jsonify({"purchase": purchase.to_dict(include_lines=True), "created": created}), 201
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    try:
        purchases = purchase_service.list_purchases(g.business_id, status=request.args.get("status"))
        return jsonify({
            "items": [p.to_dict(include_lines=True) for p in purchases],
            "count": len(purchases),
        }), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@purchases_bp.patch("/<purchase_id>/status")
@require_auth
def update_purchase_status_route(purchase_id: str):
    """Toggle Unpaid <-> Paid. Body: {"status": "Paid" | "Unpaid"}"""
    try:
        data = request.get_json(silent=True) or {}
        purchase = purchase_service.update_purchase_status(
            g.business_id, purchase_id, data.get("status"), current_actor()
        )
        return jsonify({"purchase": purchase.to_dict()}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase status")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@expenses_bp.post("")
@require_auth
def create_expense_route():
    try:
        expense, created = expense_service.record_expense(
            g.business_id, request.get_json(silent=True), current_actor()
        )
        return jsonify({"expense": expense.to_dict(), "created": created}), 201
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@expenses_bp.get("")
@require_auth
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(g.business_id, category=request.args.get("category"))
        return jsonify({"items": [e.to_dict() for e in expenses], "count": len(expenses)}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500
