# Overview: Machine-distinguishable error taxonomy shared by services and routes.

"""
Every failure the API reports carries a stable `code` so callers can tell
"fix your input" (invalid_argument, product_not_found, insufficient_stock)
from "just try again" (stock_conflict, internal) from "wait" (rate_limited).
"""

from __future__ import annotations

from flask import jsonify


class BillingError(Exception):
    """Base class for errors surfaced to API callers."""
    code = "internal"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(BillingError):
    """400-level input problem. Detected before any storage access."""
    code = "invalid_argument"
    http_status = 400


class UnauthenticatedError(BillingError):
    code = "unauthenticated"
    http_status = 401


class PermissionDeniedError(BillingError):
    """Caller is authenticated but not a member of the requested business."""
    code = "permission_denied"
    http_status = 403


class NotFoundError(BillingError):
    code = "not_found"
    http_status = 404


class ConflictError(BillingError):
    """409-level business rule conflict (e.g., duplicate party name)."""
    code = "conflict"
    http_status = 409


class RateLimitedError(BillingError):
    code = "rate_limited"
    http_status = 429

    def __init__(self, retry_after_seconds: int):
        super().__init__(
            "Rate limit exceeded. Please wait a moment.",
            details={"retry_after_seconds": retry_after_seconds},
        )
        self.retry_after_seconds = retry_after_seconds


class ProductNotFoundError(BillingError):
    code = "product_not_found"
    http_status = 404

    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found", details={"product_id": product_id})
        self.product_id = product_id


class InsufficientStockError(BillingError):
    code = "insufficient_stock"
    http_status = 409

    def __init__(self, product_id: str, available: int, requested: int, product_name: str | None = None):
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            details={"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class StockConflictError(BillingError):
    """
    The catalog changed between pricing and commit and retries ran out.
    Recovery is to re-submit (the server re-prices), not to fix the input.
    """
    code = "stock_conflict"
    http_status = 409


class InternalError(BillingError):
    """Storage/transport failure. Safe to retry: commits are all-or-nothing."""
    code = "internal"
    http_status = 500


class RateLimitUnavailableError(InternalError):
    """Rate-limit state could not be read or updated; the request is denied."""

    def __init__(self, message: str = "Rate limit validation failed"):
        super().__init__(message)


def error_response(exc: BillingError):
    response = jsonify(exc.to_dict())
    response.status_code = exc.http_status
    if isinstance(exc, RateLimitedError):
        response.headers["Retry-After"] = str(exc.retry_after_seconds)
    return response
