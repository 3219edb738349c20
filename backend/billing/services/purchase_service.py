# Overview: Service-layer operations for purchase bills; stock intake, supplier payables and ledger projection.

"""
Purchase posting.

WHY: A purchase is the only way stock enters the catalog after the opening
count. Like a sale it touches several records (purchase + lines, product
stock, supplier balance, ledger, audit) and they commit as one unit.

- Linked lines increment the product's stock and bump its version.
- Unlinked lines create a new product priced at the purchase rate with the
  purchased quantity as stock.
- amount is computed here from quantity x rate; a client-sent total is ignored.
- The purchase id is the idempotency key: posting an id that already exists
  returns the stored purchase and applies nothing twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ProductNotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseLine
from ..models.catalog import new_record_id
from ..validation import (
    MAX_PRICE_CENTS,
    coerce_cents,
    coerce_choice,
    coerce_date,
    coerce_quantity,
    optional_text,
    require_object,
    require_record_id,
    require_text,
)
from billing.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import (
    LEDGER_TYPE_PURCHASE,
    Actor,
    AuditRecord,
    LedgerRecord,
    append_audit_entry,
    append_ledger_entry,
    format_cents,
    set_ledger_status,
)
from .party_service import adjust_party_balance
from .products_service import restock_product


PURCHASE_STATUSES = ("Paid", "Unpaid")
MAX_PURCHASE_ITEMS = 500


@dataclass(frozen=True)
class PurchaseItemDraft:
    quantity: int
    rate_cents: int
    name: str | None = None
    product_id: str | None = None


def _parse_item(raw: Any, index: int) -> PurchaseItemDraft:
    field = f"items[{index}]"
    item = require_object(raw, field)
    quantity = coerce_quantity(item.get("quantity"), f"{field}.quantity")
    rate_cents = coerce_cents(item.get("rate_cents"), f"{field}.rate_cents")

    product_id = item.get("product_id")
    if product_id is not None and not isinstance(product_id, str):
        raise ValidationError(f"{field}.product_id must be a string")
    product_id = (product_id or "").strip() or None
    if product_id is not None:
        product_id = require_record_id(product_id, f"{field}.product_id")

    name = optional_text(item.get("name"), f"{field}.name")
    if product_id is None and name is None:
        raise ValidationError(f"{field}.name is required for items without product_id")

    return PurchaseItemDraft(quantity=quantity, rate_cents=rate_cents, name=name, product_id=product_id)


def _get_locked_purchase(business_id: int, purchase_id: str) -> Purchase:
    purchase = lock_for_update(
        db.session.query(Purchase).filter_by(business_id=business_id, id=purchase_id)
    ).first()
    if not purchase:
        raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})
    return purchase


def create_purchase(business_id: int, payload: Any, actor: Actor) -> tuple[Purchase, bool]:
    """
    Post a purchase bill.

    Returns (purchase, created). created is False when the id was already
    posted and the stored purchase is returned unchanged.
    """
    data = require_object(payload, "purchase")

    purchase_id = require_record_id(data.get("id"), "id")
    invoice_no = require_text(data.get("invoice_no"), "invoice_no", 64)
    purchase_date = coerce_date(data.get("date"), "date", default=utcnow().date())
    party_name = require_text(data.get("party_name"), "party_name")
    due_in = optional_text(data.get("due_in"), "due_in", 64)
    status = coerce_choice(data.get("status"), "status", PURCHASE_STATUSES)

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    if len(raw_items) > MAX_PURCHASE_ITEMS:
        raise ValidationError(f"items cannot exceed {MAX_PURCHASE_ITEMS} lines")
    items = [_parse_item(raw, i) for i, raw in enumerate(raw_items)]

    amount_cents = sum(item.quantity * item.rate_cents for item in items)
    if amount_cents > MAX_PRICE_CENTS * 100:
        raise ValidationError("purchase amount is too large")

    existing = db.session.get(Purchase, (business_id, purchase_id))
    if existing is not None:
        return existing, False

    purchase = Purchase(
        business_id=business_id,
        id=purchase_id,
        invoice_no=invoice_no,
        purchase_date=purchase_date,
        party_name=party_name,
        due_in=due_in,
        status=status,
        amount_cents=amount_cents,
        unpaid_amount_cents=amount_cents if status == "Unpaid" else 0,
        created_by_user_id=actor.user_id,
    )

    try:
        lines = []
        for position, item in enumerate(items, start=1):
            if item.product_id:
                if not restock_product(business_id, item.product_id, item.quantity):
                    raise ProductNotFoundError(item.product_id)
                product_id = item.product_id
                name = item.name
                if name is None:
                    name = db.session.query(Product.name).filter_by(
                        business_id=business_id, id=product_id
                    ).scalar()
            else:
                product_id = new_record_id()
                name = item.name
                db.session.add(Product(
                    business_id=business_id,
                    id=product_id,
                    name=name,
                    category="General",
                    unit="pcs",
                    price_cents=item.rate_cents,
                    stock=item.quantity,
                    description="Auto-added from Purchase",
                ))

            lines.append(PurchaseLine(
                business_id=business_id,
                purchase_id=purchase_id,
                position=position,
                product_id=product_id,
                name=name,
                quantity=item.quantity,
                rate_cents=item.rate_cents,
            ))

        purchase.lines = lines
        db.session.add(purchase)

        # We owe the supplier until the bill is paid
        if status == "Unpaid":
            adjust_party_balance(business_id, party_name, -amount_cents)

        append_ledger_entry(business_id=business_id, record=LedgerRecord(
            id=purchase_id,
            entry_date=purchase_date,
            type=LEDGER_TYPE_PURCHASE,
            txn_no=invoice_no,
            party_name=party_name,
            amount_cents=amount_cents,
            status=status,
        ))

        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="CREATE_PURCHASE",
            details=f"Recorded purchase {invoice_no} from {party_name}: {format_cents(amount_cents)} ({status})",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="purchase",
            entity_id=purchase_id,
            amount_cents=amount_cents,
        ))

        db.session.commit()
    except ProductNotFoundError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        # Lost the race to a concurrent post of the same id
        existing = db.session.get(Purchase, (business_id, purchase_id))
        if existing is not None:
            return existing, False
        raise ConflictError("Purchase id collides with an existing record", details={"purchase_id": purchase_id})

    return purchase, True


def update_purchase_status(business_id: int, purchase_id: str, new_status, actor: Actor) -> Purchase:
    """
    Paid <-> Unpaid. Settling an unpaid bill reduces what we owe the
    supplier; reopening it adds the debt back. Re-applying the current status
    changes nothing.
    """
    new_status = coerce_choice(new_status, "status", PURCHASE_STATUSES)

    def _op():
        purchase = _get_locked_purchase(business_id, purchase_id)
        if purchase.status == new_status:
            return purchase

        old_status = purchase.status
        purchase.status = new_status
        purchase.unpaid_amount_cents = 0 if new_status == "Paid" else purchase.amount_cents
        set_ledger_status(business_id=business_id, source_id=purchase.id, document_status=new_status)

        if old_status == "Unpaid" and new_status == "Paid":
            delta = purchase.amount_cents
        else:
            delta = -purchase.amount_cents
        adjust_party_balance(business_id, purchase.party_name, delta)

        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="UPDATE_PURCHASE_STATUS",
            details=f"Purchase {purchase.invoice_no} marked as {new_status} (was {old_status})",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="purchase",
            entity_id=purchase.id,
            amount_cents=purchase.amount_cents,
        ))

        db.session.commit()
        return purchase

    return run_with_retry(_op)


def list_purchases(business_id: int, *, status: str | None = None, limit: int = 200) -> list[Purchase]:
    query = db.session.query(Purchase).filter(Purchase.business_id == business_id)
    if status:
        query = query.filter(Purchase.status == status)
    return query.order_by(Purchase.purchase_date.desc(), Purchase.created_at.desc()).limit(limit).all()
