# Overview: Flask API routes for customers and suppliers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import current_actor, require_auth
from ..errors import BillingError, error_response
from ..services import party_service

parties_bp = Blueprint("parties", __name__, url_prefix="/api/parties")


@parties_bp.get("")
@require_auth
def list_parties_route():
    """Optional ?type=Customer|Supplier filter."""
    try:
        parties = party_service.list_parties(g.business_id, party_type=request.args.get("type"))
        return jsonify({"items": [p.to_dict() for p in parties], "count": len(parties)}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list parties")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@parties_bp.post("")
@require_auth
def create_party_route():
    try:
        party = party_service.create_party(g.business_id, request.get_json(silent=True), current_actor())
        return jsonify({"party": party.to_dict()}), 201
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create party")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500
