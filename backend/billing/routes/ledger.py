# Overview: Flask API routes for the transaction ledger and audit log (read-only).

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import BillingError, error_response
from ..services import ledger_service
from ..validation import coerce_int

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


def _limit_arg() -> int:
    raw = request.args.get("limit")
    limit = coerce_int(raw, "limit") if raw not in (None, "") else 100
    return max(1, min(limit, 500))


@ledger_bp.get("/transactions")
@require_auth
def list_transactions_route():
    """Newest first. Optional ?type=Sales Invoice|Purchase|Expense and ?limit."""
    try:
        entries = ledger_service.list_ledger_entries(
            g.business_id, entry_type=request.args.get("type"), limit=_limit_arg()
        )
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@ledger_bp.get("/audit-logs")
@require_auth
def list_audit_logs_route():
    """Newest first. Optional ?action=CREATE_SALE|... and ?limit."""
    try:
        logs = ledger_service.list_audit_logs(
            g.business_id, action=request.args.get("action"), limit=_limit_arg()
        )
        return jsonify({"items": [log.to_dict() for log in logs], "count": len(logs)}), 200
    except BillingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500
