# Overview: Service-layer operations for committed invoices: status toggle, deletion and reads.

"""
Invoice lifecycle after the sale commit.

STATUS TOGGLE (Pending <-> Paid), one unit:
- invoice.status
- ledger entry status (Paid / Unpaid)
- customer balance: Pending -> Paid debits the receivable by the invoice
  total, Paid -> Pending credits it back
Exactly once per transition: the invoice version_id makes a concurrent
toggle lose with StaleDataError, and the retry re-reads the status.

DELETION, one unit: restore stock of inventory lines, reverse an
outstanding receivable, drop the ledger projection, delete the invoice.
"""

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Invoice, LedgerEntry
from ..validation import coerce_choice
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import Actor, AuditRecord, append_audit_entry, format_cents, set_ledger_status
from .party_service import adjust_party_balance
from .products_service import restock_product
from .sale_schemas import INVOICE_STATUSES


def _get_locked_invoice(business_id: int, invoice_id: str) -> Invoice:
    invoice = lock_for_update(
        db.session.query(Invoice).filter_by(business_id=business_id, id=invoice_id)
    ).first()
    if not invoice:
        raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
    return invoice


def update_invoice_status(business_id: int, invoice_id: str, new_status, actor: Actor) -> Invoice:
    new_status = coerce_choice(new_status, "status", INVOICE_STATUSES)

    def _op():
        invoice = _get_locked_invoice(business_id, invoice_id)
        if invoice.status == new_status:
            return invoice

        old_status = invoice.status
        invoice.status = new_status
        set_ledger_status(business_id=business_id, source_id=invoice.id, document_status=new_status)

        if old_status == "Pending" and new_status == "Paid":
            delta = -invoice.total_cents
        else:
            delta = invoice.total_cents
        adjust_party_balance(business_id, invoice.customer_name, delta)

        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="UPDATE_SALE_STATUS",
            details=f"Invoice {invoice.invoice_no} marked as {new_status} (was {old_status})",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="invoice",
            entity_id=invoice.id,
            amount_cents=invoice.total_cents,
        ))

        db.session.commit()
        return invoice

    return run_with_retry(_op)


def delete_invoice(business_id: int, invoice_id: str, actor: Actor) -> None:
    def _op():
        invoice = _get_locked_invoice(business_id, invoice_id)

        for line in invoice.lines:
            if line.product_id:
                restock_product(business_id, line.product_id, line.quantity)

        if invoice.status == "Pending":
            adjust_party_balance(business_id, invoice.customer_name, -invoice.total_cents)

        ledger = db.session.get(LedgerEntry, (business_id, invoice.id))
        if ledger is not None:
            db.session.delete(ledger)

        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="DELETE_SALE",
            details=f"Deleted invoice {invoice.invoice_no} for {invoice.customer_name}: {format_cents(invoice.total_cents)}",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="invoice",
            entity_id=invoice.id,
            amount_cents=invoice.total_cents,
        ))

        db.session.delete(invoice)
        db.session.commit()

    run_with_retry(_op)


def get_invoice(business_id: int, invoice_id: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(business_id=business_id, id=invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
    return invoice


def list_invoices(business_id: int, *, status: str | None = None, limit: int = 200) -> list[Invoice]:
    query = db.session.query(Invoice).filter(Invoice.business_id == business_id)
    if status:
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc()).limit(limit).all()
