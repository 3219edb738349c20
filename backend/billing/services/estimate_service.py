# Overview: Service-layer operations for estimates (quotes) and their conversion into sales invoices.

"""
Estimates.

WHY: A quote is the usual first step of a sale. It records what the
customer was offered without touching stock, the ledger or balances.

- Lines are priced from the catalog when the estimate is saved (created or
  edited). Client prices are ignored, as for sales. Stock is not checked.
- The estimate id is client-generated; posting an id that already exists
  returns the stored estimate.
- Conversion submits the estimate's product ids and quantities to
  sales_service.create_sale, so the invoice is re-priced and stock-checked
  at conversion time. The invoice id is the estimate id: a retried or
  concurrent conversion resolves to the same invoice through the sale's
  idempotency.
- Once converted an estimate is read-only (no edits, no status changes).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ConflictError, InternalError, NotFoundError
from ..extensions import db
from ..models import Estimate, EstimateLine, Invoice
from ..validation import (
    coerce_choice,
    coerce_date,
    coerce_percent_bps,
    require_object,
    require_record_id,
    require_text,
)
from billing.time_utils import utcnow
from . import sales_service
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import Actor, AuditRecord, append_audit_entry, format_cents
from .pricing_service import DEFAULT_TAX_RATE_BPS, DraftItem, PricedSale, price_sale
from .sale_schemas import parse_draft_items
from .sale_store import SaleStore, StorageError
from .sales_service import SalePolicy, SaleResult


ESTIMATE_STATUSES = ("Draft", "Sent", "Accepted", "Rejected")
CONVERTED_STATUS = "Accepted"


@dataclass(frozen=True)
class EstimateDraft:
    estimate_no: str
    estimate_date: date
    customer_name: str
    status: str
    tax_rate_bps: int
    items: tuple[DraftItem, ...]


def _parse_estimate(data: dict, *, default_status: str, default_tax_rate_bps: int) -> EstimateDraft:
    tax_rate = data.get("tax_rate")
    return EstimateDraft(
        estimate_no=require_text(data.get("estimate_no"), "estimate_no", 64),
        estimate_date=coerce_date(data.get("date"), "date", default=utcnow().date()),
        customer_name=require_text(data.get("customer_name"), "customer_name"),
        status=coerce_choice(data.get("status", default_status), "status", ESTIMATE_STATUSES),
        tax_rate_bps=default_tax_rate_bps if tax_rate is None else coerce_percent_bps(tax_rate),
        items=parse_draft_items(data.get("items")),
    )


def _quote(store: SaleStore, business_id: int, draft: EstimateDraft) -> PricedSale:
    try:
        return price_sale(
            store, business_id, list(draft.items), tax_rate_bps=draft.tax_rate_bps, check_stock=False
        )
    except StorageError as exc:
        raise InternalError("Failed to read catalog") from exc


def _apply_quote(estimate: Estimate, business_id: int, draft: EstimateDraft, priced: PricedSale) -> None:
    estimate.estimate_no = draft.estimate_no
    estimate.estimate_date = draft.estimate_date
    estimate.customer_name = draft.customer_name
    estimate.status = draft.status
    estimate.subtotal_cents = priced.subtotal_cents
    estimate.tax_rate_bps = priced.tax_rate_bps
    estimate.tax_cents = priced.tax_cents
    estimate.total_cents = priced.total_cents
    estimate.lines = [
        EstimateLine(
            business_id=business_id,
            estimate_id=estimate.id,
            position=line.position,
            product_id=line.product_id,
            product_name=line.product_name,
            unit=line.unit,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.line_total_cents,
        )
        for line in priced.lines
    ]


def _get_locked_estimate(business_id: int, estimate_id: str) -> Estimate:
    estimate = lock_for_update(
        db.session.query(Estimate).filter_by(business_id=business_id, id=estimate_id)
    ).first()
    if not estimate:
        raise NotFoundError("Estimate not found", details={"estimate_id": estimate_id})
    return estimate


def _ensure_editable(estimate: Estimate) -> None:
    if estimate.is_converted:
        raise ConflictError(
            "Estimate has already been converted to an invoice",
            details={"estimate_id": estimate.id, "invoice_id": estimate.converted_invoice_id},
        )


def _audit(business_id: int, actor: Actor, action: str, details: str, estimate_id: str, amount_cents: int) -> None:
    append_audit_entry(business_id=business_id, record=AuditRecord(
        action=action,
        details=details,
        user_id=actor.user_id,
        user_name=actor.user_name,
        entity_type="estimate",
        entity_id=estimate_id,
        amount_cents=amount_cents,
    ))


def create_estimate(
    store: SaleStore,
    business_id: int,
    payload: Any,
    actor: Actor,
    *,
    default_tax_rate_bps: int = DEFAULT_TAX_RATE_BPS,
) -> tuple[Estimate, bool]:
    """
    Save a new estimate priced from the catalog.

    Returns (estimate, created); re-posting an existing id returns the
    stored estimate with created=False.
    """
    data = require_object(payload, "estimate")
    estimate_id = require_record_id(data.get("id"), "id")
    draft = _parse_estimate(data, default_status="Draft", default_tax_rate_bps=default_tax_rate_bps)

    existing = db.session.get(Estimate, (business_id, estimate_id))
    if existing is not None:
        return existing, False

    priced = _quote(store, business_id, draft)

    estimate = Estimate(business_id=business_id, id=estimate_id, created_by_user_id=actor.user_id)
    _apply_quote(estimate, business_id, draft, priced)

    try:
        db.session.add(estimate)
        _audit(
            business_id, actor, "CREATE_ESTIMATE",
            f"Created estimate {draft.estimate_no} for {draft.customer_name}: {format_cents(priced.total_cents)}",
            estimate_id, priced.total_cents,
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = db.session.get(Estimate, (business_id, estimate_id))
        if existing is not None:
            return existing, False
        raise

    return estimate, True


def update_estimate(
    store: SaleStore,
    business_id: int,
    estimate_id: str,
    payload: Any,
    actor: Actor,
) -> Estimate:
    """
    Replace customer, date, tax rate and lines, re-pricing from the catalog.
    Omitted status and tax_rate keep their current values.
    """
    data = require_object(payload, "estimate")
    current = get_estimate(business_id, estimate_id)
    _ensure_editable(current)

    draft = _parse_estimate(data, default_status=current.status, default_tax_rate_bps=current.tax_rate_bps)
    priced = _quote(store, business_id, draft)

    def _op():
        estimate = _get_locked_estimate(business_id, estimate_id)
        _ensure_editable(estimate)
        _apply_quote(estimate, business_id, draft, priced)
        _audit(
            business_id, actor, "UPDATE_ESTIMATE",
            f"Updated estimate {draft.estimate_no}: {format_cents(priced.total_cents)}",
            estimate_id, priced.total_cents,
        )
        db.session.commit()
        return estimate

    return run_with_retry(_op)


def update_estimate_status(business_id: int, estimate_id: str, new_status, actor: Actor) -> Estimate:
    new_status = coerce_choice(new_status, "status", ESTIMATE_STATUSES)

    def _op():
        estimate = _get_locked_estimate(business_id, estimate_id)
        if estimate.status == new_status:
            return estimate
        _ensure_editable(estimate)

        old_status = estimate.status
        estimate.status = new_status
        _audit(
            business_id, actor, "UPDATE_ESTIMATE_STATUS",
            f"Estimate {estimate.estimate_no} marked as {new_status} (was {old_status})",
            estimate.id, estimate.total_cents,
        )
        db.session.commit()
        return estimate

    return run_with_retry(_op)


def delete_estimate(business_id: int, estimate_id: str, actor: Actor) -> None:
    """Delete an estimate. An invoice it was converted into is kept."""
    def _op():
        estimate = _get_locked_estimate(business_id, estimate_id)
        _audit(
            business_id, actor, "DELETE_ESTIMATE",
            f"Deleted estimate {estimate.estimate_no} for {estimate.customer_name}",
            estimate.id, estimate.total_cents,
        )
        db.session.delete(estimate)
        db.session.commit()

    run_with_retry(_op)


def get_estimate(business_id: int, estimate_id: str) -> Estimate:
    estimate = db.session.query(Estimate).filter_by(business_id=business_id, id=estimate_id).first()
    if not estimate:
        raise NotFoundError("Estimate not found", details={"estimate_id": estimate_id})
    return estimate


def list_estimates(
    business_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = 200,
) -> list[Estimate]:
    """Newest first. search matches the customer name or the estimate number."""
    query = db.session.query(Estimate).filter(Estimate.business_id == business_id)
    if status:
        query = query.filter(Estimate.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Estimate.customer_name.ilike(pattern), Estimate.estimate_no.ilike(pattern)))
    return query.order_by(Estimate.estimate_date.desc(), Estimate.created_at.desc()).limit(limit).all()


def _sale_payload(estimate: Estimate, business_id: int, data: dict) -> dict:
    items = []
    for line in estimate.lines:
        if line.product_id:
            items.append({"product_id": line.product_id, "quantity": line.quantity})
        else:
            items.append({"product_name": line.product_name, "quantity": line.quantity})

    return {
        "business_id": business_id,
        "invoice": {
            "id": estimate.id,
            "invoice_no": data.get("invoice_no"),
            "date": data.get("date"),
            "customer_name": estimate.customer_name,
            "status": data.get("status", "Pending"),
            "tax_rate": str(Decimal(estimate.tax_rate_bps) / 100),
            "items": items,
        },
    }


def _mark_converted(business_id: int, estimate_id: str, invoice_id: str, total_cents: int, actor: Actor) -> None:
    try:
        # Only the first conversion to land records it
        result = db.session.execute(
            update(Estimate)
            .where(
                Estimate.business_id == business_id,
                Estimate.id == estimate_id,
                Estimate.converted_invoice_id.is_(None),
            )
            .values(
                converted_invoice_id=invoice_id,
                converted_at=utcnow(),
                status=CONVERTED_STATUS,
                version_id=Estimate.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            _audit(
                business_id, actor, "CONVERT_ESTIMATE",
                f"Converted estimate to invoice {invoice_id}: {format_cents(total_cents)}",
                estimate_id, total_cents,
            )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise InternalError("Failed to record estimate conversion") from exc


def convert_estimate(
    store: SaleStore,
    actor: Actor,
    business_id: int,
    estimate_id: str,
    payload: Any,
    *,
    policy: SalePolicy | None = None,
    now: datetime | None = None,
) -> SaleResult:
    """
    Turn an estimate into a sales invoice.

    payload: {invoice_no, date?, status?: Paid|Pending (default Pending)}

    Goes through the full sale pipeline (rate limit, re-pricing, stock
    check, atomic commit). A converted estimate returns its invoice again.
    """
    data = require_object(payload, "conversion")
    estimate = get_estimate(business_id, estimate_id)

    if estimate.is_converted:
        invoice = db.session.get(Invoice, (business_id, estimate.converted_invoice_id))
        if invoice is None:
            raise ConflictError(
                "The invoice this estimate was converted into has been deleted",
                details={"estimate_id": estimate_id, "invoice_id": estimate.converted_invoice_id},
            )
        return SaleResult(invoice_id=invoice.id, total_cents=invoice.total_cents, replayed=True)

    if estimate.status == "Rejected":
        raise ConflictError("A rejected estimate cannot be converted", details={"estimate_id": estimate_id})

    sale_payload = _sale_payload(estimate, business_id, data)
    result = sales_service.create_sale(store, actor, sale_payload, policy=policy, now=now)

    _mark_converted(business_id, estimate_id, result.invoice_id, result.total_cents, actor)
    return result
