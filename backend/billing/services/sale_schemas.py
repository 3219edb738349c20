# Overview: Parsing of untrusted sale submissions into typed drafts.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from ..errors import ValidationError
from ..validation import (
    coerce_choice,
    coerce_date,
    coerce_percent_bps,
    coerce_quantity,
    optional_text,
    require_object,
    require_record_id,
    require_text,
)
from billing.time_utils import utcnow
from .pricing_service import DEFAULT_TAX_RATE_BPS, DraftItem


INVOICE_STATUSES = ("Paid", "Pending")
MAX_ITEMS = 500


@dataclass(frozen=True)
class SaleDraft:
    id: str
    invoice_no: str
    invoice_date: date
    customer_name: str
    status: str
    tax_rate_bps: int
    items: tuple[DraftItem, ...]


def _parse_item(raw: Any, index: int) -> DraftItem:
    field = f"items[{index}]"
    item = require_object(raw, field)

    quantity = coerce_quantity(item.get("quantity"), f"{field}.quantity")

    # Empty product_id means a non-inventory line. Any price the client
    # attached ("price", "unit_price_cents", ...) is ignored.
    product_id = item.get("product_id")
    if product_id is not None and not isinstance(product_id, str):
        raise ValidationError(f"{field}.product_id must be a string")
    product_id = (product_id or "").strip() or None
    if product_id is not None:
        product_id = require_record_id(product_id, f"{field}.product_id")
        return DraftItem(quantity=quantity, product_id=product_id)

    description = optional_text(
        item.get("product_name", item.get("description")),
        f"{field}.product_name",
    )
    if description is None:
        raise ValidationError(f"{field}.product_name is required for items without product_id")
    return DraftItem(quantity=quantity, description=description)


def parse_draft_items(raw_items: Any) -> tuple[DraftItem, ...]:
    """Product references and free text lines shared by sales and estimates."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    if len(raw_items) > MAX_ITEMS:
        raise ValidationError(f"items cannot exceed {MAX_ITEMS} lines")
    return tuple(_parse_item(raw, i) for i, raw in enumerate(raw_items))


def parse_sale_draft(payload: Any, *, default_tax_rate_bps: int = DEFAULT_TAX_RATE_BPS) -> SaleDraft:
    """
    Validate the `invoice` object of a sale submission.

    Raises ValidationError before any storage access.
    """
    invoice = require_object(payload, "invoice")
    items = parse_draft_items(invoice.get("items"))

    tax_rate = invoice.get("tax_rate")
    tax_rate_bps = default_tax_rate_bps if tax_rate is None else coerce_percent_bps(tax_rate)

    return SaleDraft(
        id=require_record_id(invoice.get("id"), "id"),
        invoice_no=require_text(invoice.get("invoice_no"), "invoice_no", 64),
        invoice_date=coerce_date(invoice.get("date"), "date", default=utcnow().date()),
        customer_name=require_text(invoice.get("customer_name"), "customer_name"),
        status=coerce_choice(invoice.get("status"), "status", INVOICE_STATUSES),
        tax_rate_bps=tax_rate_bps,
        items=items,
    )
