from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_iso_date, to_utc_z


class Purchase(db.Model):
    """
    Purchase bill from a supplier.

    Posting a purchase increments catalog stock (or creates the product for
    unlinked lines). amount_cents is computed server-side from the lines.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_business_date", "business_id", "purchase_date"),
    )

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)

    invoice_no = db.Column(db.String(64), nullable=False)
    purchase_date = db.Column(db.Date, nullable=False)
    party_name = db.Column(db.String(255), nullable=False)
    due_in = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, index=True)  # Paid, Unpaid
    amount_cents = db.Column(db.BigInteger, nullable=False)
    unpaid_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "PurchaseLine",
        back_populates="purchase",
        order_by="PurchaseLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "invoice_no": self.invoice_no,
            "date": to_iso_date(self.purchase_date),
            "party_name": self.party_name,
            "due_in": self.due_in,
            "status": self.status,
            "amount_cents": self.amount_cents,
            "unpaid_amount_cents": self.unpaid_amount_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = (
        db.ForeignKeyConstraint(
            ["business_id", "purchase_id"],
            ["purchases.business_id", "purchases.id"],
            name="fk_purchase_lines_purchase",
            ondelete="CASCADE",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False)
    purchase_id = db.Column(db.String(64), nullable=False)
    position = db.Column(db.Integer, nullable=False)

    # Product the stock was booked against (created on the fly for unlinked lines)
    product_id = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    rate_cents = db.Column(db.Integer, nullable=False)

    purchase = db.relationship("Purchase", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "rate_cents": self.rate_cents,
            "line_total_cents": self.quantity * self.rate_cents,
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_business_date", "business_id", "expense_date"),
    )

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)

    expense_date = db.Column(db.Date, nullable=False)
    category = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    payment_mode = db.Column(db.String(32), nullable=False)  # Cash, Online, Bank Transfer

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "date": to_iso_date(self.expense_date),
            "category": self.category,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "payment_mode": self.payment_mode,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
