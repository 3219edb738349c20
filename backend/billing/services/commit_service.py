# Overview: Atomic commit of a priced sale (stock, invoice, ledger, balance, audit).

"""
Sale Commit Coordinator

WHY: A sale is five writes (stock decrements, invoice + lines, ledger
projection, customer receivable, audit entry). A half-applied sale either
loses stock or sells phantom goods, so they are one unit.

- Stock decrements are conditional on the product versions seen during
  pricing. If anything moved, the unit aborts with StockConflictError and the
  caller re-prices.
- The client-generated invoice id is the idempotency key. Committing an id
  that already exists returns the stored result (replayed=True) and applies
  nothing a second time.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ConflictError, InternalError, StockConflictError
from .ledger_service import (
    LEDGER_TYPE_SALE,
    Actor,
    AuditRecord,
    LedgerRecord,
    format_cents,
    ledger_status,
)
from .pricing_service import PricedSale
from .sale_schemas import SaleDraft
from .sale_store import (
    DuplicateInvoice,
    InvoiceLineRecord,
    InvoiceRecord,
    SaleRecords,
    SaleStore,
    SnapshotConflict,
    StorageError,
)


AUDIT_CREATE_SALE = "CREATE_SALE"


@dataclass(frozen=True)
class CommitResult:
    invoice_id: str
    total_cents: int
    replayed: bool = False


def build_sale_records(draft: SaleDraft, priced: PricedSale, actor: Actor) -> SaleRecords:
    invoice = InvoiceRecord(
        id=draft.id,
        invoice_no=draft.invoice_no,
        invoice_date=draft.invoice_date,
        customer_name=draft.customer_name,
        status=draft.status,
        subtotal_cents=priced.subtotal_cents,
        tax_rate_bps=priced.tax_rate_bps,
        tax_cents=priced.tax_cents,
        total_cents=priced.total_cents,
        created_by_user_id=actor.user_id,
        lines=tuple(
            InvoiceLineRecord(
                position=line.position,
                product_id=line.product_id,
                product_name=line.product_name,
                unit=line.unit,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.line_total_cents,
            )
            for line in priced.lines
        ),
    )

    ledger = LedgerRecord(
        id=draft.id,
        entry_date=draft.invoice_date,
        type=LEDGER_TYPE_SALE,
        txn_no=draft.invoice_no,
        party_name=draft.customer_name,
        amount_cents=priced.total_cents,
        status=ledger_status(draft.status),
    )

    audit = AuditRecord(
        action=AUDIT_CREATE_SALE,
        details=(
            f"Created invoice {draft.invoice_no} for {draft.customer_name}: "
            f"{format_cents(priced.total_cents)} ({draft.status})"
        ),
        user_id=actor.user_id,
        user_name=actor.user_name,
        entity_type="invoice",
        entity_id=draft.id,
        amount_cents=priced.total_cents,
    )

    # An unpaid invoice is money the customer owes us
    receivable = priced.total_cents if draft.status == "Pending" else 0

    return SaleRecords(
        invoice=invoice,
        ledger=ledger,
        audit=audit,
        decrements=priced.decrements,
        receivable_party=draft.customer_name if receivable else None,
        receivable_delta_cents=receivable,
    )


def _replay(store: SaleStore, business_id: int, invoice_id: str) -> CommitResult:
    try:
        existing = store.find_committed_sale(business_id, invoice_id)
    except StorageError as exc:
        raise InternalError("Failed to read committed invoice") from exc

    if existing is None:
        # The id is taken by a purchase or expense ledger row
        raise ConflictError(
            "Invoice id collides with an existing record",
            details={"invoice_id": invoice_id},
        )
    return CommitResult(invoice_id=existing.invoice_id, total_cents=existing.total_cents, replayed=True)


def commit_sale(
    store: SaleStore,
    business_id: int,
    draft: SaleDraft,
    priced: PricedSale,
    actor: Actor,
) -> CommitResult:
    records = build_sale_records(draft, priced, actor)

    try:
        store.apply_sale(business_id, records)
    except DuplicateInvoice:
        return _replay(store, business_id, draft.id)
    except SnapshotConflict as exc:
        raise StockConflictError(
            "Catalog changed while the sale was being committed; re-submit to re-price",
            details={"product_id": exc.product_id},
        ) from exc
    except StorageError as exc:
        raise InternalError("Failed to commit sale") from exc

    return CommitResult(invoice_id=draft.id, total_cents=priced.total_cents)
