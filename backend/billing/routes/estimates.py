# Overview: Flask API routes for estimates (quotes); parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import current_actor, require_auth
from ..errors import BillingError, RateLimitUnavailableError, StockConflictError, error_response
from ..services import estimate_service
from ..services.sale_store import SqlSaleStore
from ..services.sales_service import SalePolicy

estimates_bp = Blueprint("estimates", __name__, url_prefix="/api/estimates")


def _policy() -> SalePolicy:
    return SalePolicy.from_config(current_app.config)


@estimates_bp.post("")
@require_auth
def create_estimate_route():
    """
    Body: {id, estimate_no, date?, customer_name, status?, tax_rate?,
    items: [{product_id, quantity} | {product_name, quantity}]}

    201 with the stored estimate; re-posting the same id returns it again
    with "created": false.
    """
    try:
        estimate, created = estimate_service.create_estimate(
            SqlSaleStore(),
            g.business_id,
            request.get_json(silent=True),
            current_actor(),
            default_tax_rate_bps=_policy().default_tax_rate_bps,
        )
        return jsonify({"estimate": estimate.to_dict(include_lines=True), "created": created}), 201
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create estimate")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@estimates_bp.get("")
@require_auth
def list_estimates_route():
    """Optional ?status=Draft|Sent|Accepted|Rejected and ?q= (customer or number)."""
    try:
        estimates = estimate_service.list_estimates(
            g.business_id, status=request.args.get("status"), search=request.args.get("q")
        )
        return jsonify({
            "items": [est.to_dict(include_lines=True) for est in estimates],
            "count": len(estimates),
        }), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list estimates")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@estimates_bp.get("/<estimate_id>")
@require_auth
def get_estimate_route(estimate_id: str):
    try:
        estimate = estimate_service.get_estimate(g.business_id, estimate_id)
        return jsonify({"estimate": estimate.to_dict(include_lines=True)}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get estimate")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@estimates_bp.put("/<estimate_id>")
@require_auth
def update_estimate_route(estimate_id: str):
    """Full replacement of an unconverted estimate; lines are re-priced."""
    try:
        estimate = estimate_service.update_estimate(
            SqlSaleStore(), g.business_id, estimate_id, request.get_json(silent=True), current_actor()
        )
        return jsonify({"estimate": estimate.to_dict(include_lines=True)}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update estimate")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@estimates_bp.patch("/<estimate_id>/status")
@require_auth
def update_estimate_status_route(estimate_id: str):
    """Body: {"status": "Draft" | "Sent" | "Accepted" | "Rejected"}"""
    try:
        data = request.get_json(silent=True) or {}
        estimate = estimate_service.update_estimate_status(
            g.business_id, estimate_id, data.get("status"), current_actor()
        )
        return jsonify({"estimate": estimate.to_dict()}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update estimate status")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@estimates_bp.delete("/<estimate_id>")
@require_auth
def delete_estimate_route(estimate_id: str):
    try:
        estimate_service.delete_estimate(g.business_id, estimate_id, current_actor())
        return jsonify({"deleted": True, "estimate_id": estimate_id}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete estimate")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@estimates_bp.post("/<estimate_id>/convert")
@require_auth
def convert_estimate_route(estimate_id: str):
    """
    Convert into a sales invoice. Body: {invoice_no, date?, status?}

    Same responses as POST /api/sales; converting again returns the same
    201 and body.
    """
    try:
        result = estimate_service.convert_estimate(
            SqlSaleStore(),
            current_actor(),
            g.business_id,
            estimate_id,
            request.get_json(silent=True),
            policy=_policy(),
        )
        return jsonify({**result.to_dict(), "estimate_id": estimate_id}), 201

    except RateLimitUnavailableError as e:
        current_app.logger.warning("Estimate conversion denied for user %s: %s", g.current_user.id, e)
        return error_response(e)
    except StockConflictError as e:
        current_app.logger.warning("Estimate conversion retries exhausted for user %s: %s", g.current_user.id, e.details)
        return error_response(e)
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert estimate")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500
