# Overview: Service-layer operations for the transaction ledger and audit log.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ..extensions import db
from ..models import AuditLog, LedgerEntry

"""
Ledger/Audit Invariants (authoritative)

- Ledger entries are projections of a source document (invoice, purchase,
  expense), keyed by the source id, written in the same DB transaction.
- Audit entries are append-only. No updates, no deletes.
- Neither helper commits; the caller owns the transaction.
"""

LEDGER_TYPE_SALE = "Sales Invoice"
LEDGER_TYPE_PURCHASE = "Purchase"
LEDGER_TYPE_EXPENSE = "Expense"


@dataclass(frozen=True)
class Actor:
    """Authenticated principal a write is attributed to."""
    user_id: int
    business_id: int
    user_name: str | None = None


@dataclass(frozen=True)
class LedgerRecord:
    id: str
    entry_date: date
    type: str
    txn_no: str
    party_name: str
    amount_cents: int
    status: str | None
    description: str | None = None


@dataclass(frozen=True)
class AuditRecord:
    action: str
    details: str
    user_id: int | None
    user_name: str | None
    entity_type: str | None = None
    entity_id: str | None = None
    amount_cents: int | None = None


def ledger_status(document_status: str) -> str:
    """Invoice/purchase status -> ledger status (Paid stays Paid, anything else is Unpaid)."""
    return "Paid" if document_status == "Paid" else "Unpaid"


def append_ledger_entry(*, business_id: int, record: LedgerRecord) -> LedgerEntry:
    entry = LedgerEntry(
        business_id=business_id,
        id=record.id,
        entry_date=record.entry_date,
        type=record.type,
        txn_no=record.txn_no,
        party_name=record.party_name,
        amount_cents=record.amount_cents,
        status=record.status,
        description=record.description,
    )
    db.session.add(entry)
    return entry


def append_audit_entry(*, business_id: int, record: AuditRecord) -> AuditLog:
    """
    Append-only audit entry.

    - No updates/deletes of existing entries.
    - occurred_at comes from the DB default.
    """
    entry = AuditLog(
        business_id=business_id,
        action=record.action,
        details=record.details,
        user_id=record.user_id,
        user_name=record.user_name,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        amount_cents=record.amount_cents,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def set_ledger_status(*, business_id: int, source_id: str, document_status: str) -> None:
    entry = db.session.get(LedgerEntry, (business_id, source_id))
    if entry is not None:
        entry.status = ledger_status(document_status)


def list_ledger_entries(business_id: int, *, entry_type: str | None = None, limit: int = 200) -> list[LedgerEntry]:
    query = db.session.query(LedgerEntry).filter(LedgerEntry.business_id == business_id)
    if entry_type:
        query = query.filter(LedgerEntry.type == entry_type)
    return (
        query.order_by(LedgerEntry.entry_date.desc(), LedgerEntry.created_at.desc())
        .limit(limit)
        .all()
    )


def list_audit_logs(business_id: int, *, action: str | None = None, limit: int = 200) -> list[AuditLog]:
    query = db.session.query(AuditLog).filter(AuditLog.business_id == business_id)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.id.desc()).limit(limit).all()


def format_cents(cents: int) -> str:
    """2950050 -> '29,500.50' (audit details only; amounts are stored in cents)."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole:,}.{frac:02d}"
