"""
Secure Sale Creation

WHY: The only accepted path for creating a sales invoice. Clients submit
product references and quantities; the server re-prices, checks stock and
commits everything in one unit. There is no direct-write fallback.

Pipeline (each step must finish before the next starts):
1. Authenticated actor, business membership
2. Input validation (no storage access)
3. Rate limit (fails closed)
4. Idempotent replay: an already-committed invoice id returns its result
5. Price against a catalog snapshot
6. Atomic commit; on StockConflictError go back to 5, at most
   commit_attempts rounds
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from ..errors import (
    InternalError,
    PermissionDeniedError,
    StockConflictError,
    UnauthenticatedError,
    ValidationError,
)
from . import rate_limit_service
from .commit_service import CommitResult, commit_sale
from .pricing_service import DEFAULT_TAX_RATE_BPS, price_sale
from .ledger_service import Actor
from .sale_schemas import parse_sale_draft
from .sale_store import SaleStore, StorageError
from ..validation import coerce_int, coerce_percent_bps


@dataclass(frozen=True)
class SalePolicy:
    window_seconds: int = rate_limit_service.WINDOW_SECONDS
    max_requests: int = rate_limit_service.MAX_REQUESTS
    commit_attempts: int = 5
    default_tax_rate_bps: int = DEFAULT_TAX_RATE_BPS

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SalePolicy":
        return cls(
            window_seconds=int(config.get("SALE_RATE_LIMIT_WINDOW_SECONDS", rate_limit_service.WINDOW_SECONDS)),
            max_requests=int(config.get("SALE_RATE_LIMIT_MAX_REQUESTS", rate_limit_service.MAX_REQUESTS)),
            commit_attempts=max(1, int(config.get("SALE_COMMIT_ATTEMPTS", 5))),
            default_tax_rate_bps=coerce_percent_bps(config.get("DEFAULT_TAX_RATE", "18"), "DEFAULT_TAX_RATE"),
        )


@dataclass(frozen=True)
class SaleResult:
    invoice_id: str
    total_cents: int
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "success": True,
            "invoice_id": self.invoice_id,
            "total_cents": self.total_cents,
            "total": self.total_cents / 100,
        }


def _resolve_business_id(actor: Actor, requested: Any) -> int:
    if requested is None:
        return actor.business_id
    business_id = coerce_int(requested, "business_id")
    if business_id != actor.business_id:
        raise PermissionDeniedError(
            "You do not have access to this business",
            details={"business_id": business_id},
        )
    return business_id


def create_sale(
    store: SaleStore,
    actor: Actor | None,
    payload: Any,
    *,
    policy: SalePolicy | None = None,
    now: datetime | None = None,
) -> SaleResult:
    """
    Create a sales invoice from an untrusted submission.

    payload: {"business_id"?: int, "invoice": {id, invoice_no, date,
    customer_name, status, tax_rate?, items: [{product_id?, quantity,
    product_name?}]}}

    Raises a BillingError subclass on every failure; nothing is persisted
    unless a SaleResult is returned.
    """
    if actor is None:
        raise UnauthenticatedError("User must be logged in to create a sale.")

    policy = policy or SalePolicy()

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    business_id = _resolve_business_id(actor, payload.get("business_id"))
    draft = parse_sale_draft(payload.get("invoice"), default_tax_rate_bps=policy.default_tax_rate_bps)

    rate_limit_service.admit(
        store,
        actor.user_id,
        now=now,
        window_seconds=policy.window_seconds,
        max_requests=policy.max_requests,
    )

    try:
        existing = store.find_committed_sale(business_id, draft.id)
    except StorageError as exc:
        raise InternalError("Failed to read invoice") from exc
    if existing is not None:
        return SaleResult(invoice_id=existing.invoice_id, total_cents=existing.total_cents, replayed=True)

    last_conflict: StockConflictError | None = None
    for _ in range(policy.commit_attempts):
        try:
            priced = price_sale(store, business_id, list(draft.items), tax_rate_bps=draft.tax_rate_bps)
        except StorageError as exc:
            raise InternalError("Failed to read catalog") from exc

        try:
            result: CommitResult = commit_sale(store, business_id, draft, priced, actor)
        except StockConflictError as exc:
            last_conflict = exc
            continue

        return SaleResult(
            invoice_id=result.invoice_id,
            total_cents=result.total_cents,
            replayed=result.replayed,
        )

    raise last_conflict
