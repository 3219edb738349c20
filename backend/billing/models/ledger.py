from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_iso_date, to_utc_z


class LedgerEntry(db.Model):
    """
    Transaction ledger entry (read-optimized projection).

    Denormalized summary of an invoice, purchase or expense. Not
    authoritative: always written in the same DB transaction as its source
    document and keyed by the source document id.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_business_date", "business_id", "entry_date"),
        db.Index("ix_ledger_entries_business_type", "business_id", "type"),
    )

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)

    entry_date = db.Column(db.Date, nullable=False)
    type = db.Column(db.String(32), nullable=False)  # Sales Invoice, Purchase, Expense
    txn_no = db.Column(db.String(64), nullable=False)
    party_name = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    status = db.Column(db.String(16), nullable=True)  # Paid, Unpaid
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "date": to_iso_date(self.entry_date),
            "type": self.type,
            "txn_no": self.txn_no,
            "party_name": self.party_name,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class AuditLog(db.Model):
    """
    Audit log entry.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_business_occurred", "business_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)

    action = db.Column(db.String(64), nullable=False, index=True)  # CREATE_SALE, UPDATE_SALE_STATUS, ...
    details = db.Column(db.Text, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    user_name = db.Column(db.String(255), nullable=True)

    # Source document, when the action concerns one
    entity_type = db.Column(db.String(32), nullable=True)
    entity_id = db.Column(db.String(64), nullable=True)
    amount_cents = db.Column(db.BigInteger, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "action": self.action,
            "details": self.details,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "amount_cents": self.amount_cents,
            "occurred_at": to_utc_z(self.occurred_at),
        }
