from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_iso_date, to_utc_z


class Invoice(db.Model):
    """
    Sales invoice.

    Written exactly once by the sale commit. The client-generated id is the
    idempotency key: a retried submission with the same id resolves to this
    row instead of creating a second invoice.

    After creation only status changes (Pending <-> Paid) and deletion are
    allowed; both go through invoice_service so ledger, balance and stock
    stay consistent.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_business_date", "business_id", "invoice_date"),
        db.Index("ix_invoices_business_customer", "business_id", "customer_name"),
    )

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)

    # Display number (e.g. "INV-0042"); not unique-enforced
    invoice_no = db.Column(db.String(64), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False)

    # Free text, matched by name against parties for balance bookkeeping
    customer_name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, index=True)  # Paid, Pending

    # All amounts in cents; tax rate in basis points (1800 = 18%)
    subtotal_cents = db.Column(db.BigInteger, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.BigInteger, nullable=False)
    total_cents = db.Column(db.BigInteger, nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        order_by="InvoiceLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "invoice_no": self.invoice_no,
            "date": to_iso_date(self.invoice_date),
            "customer_name": self.customer_name,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class InvoiceLine(db.Model):
    """Finalized line: authoritative unit price copied from the catalog at commit time."""
    __tablename__ = "invoice_lines"
    __table_args__ = (
        db.ForeignKeyConstraint(
            ["business_id", "invoice_id"],
            ["invoices.business_id", "invoices.id"],
            name="fk_invoice_lines_invoice",
            ondelete="CASCADE",
        ),
        db.Index("ix_invoice_lines_invoice", "business_id", "invoice_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False)
    invoice_id = db.Column(db.String(64), nullable=False)
    position = db.Column(db.Integer, nullable=False)

    # NULL for non-inventory (free text) lines
    product_id = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.BigInteger, nullable=False)

    invoice = db.relationship("Invoice", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
