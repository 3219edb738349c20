from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_iso_date, to_utc_z


class Estimate(db.Model):
    """
    Quote sent to a customer before a sale.

    Lines are priced from the catalog when the estimate is saved, so the
    quoted total is what the invoice would cost at that moment. Stock is not
    reserved and not checked.

    Conversion creates a sales invoice through the normal sale pipeline,
    which re-prices and checks stock again. The invoice reuses the estimate
    id, so converting twice resolves to the same invoice. Once
    converted_invoice_id is set the estimate is read-only.
    """
    __tablename__ = "estimates"
    __table_args__ = (
        db.Index("ix_estimates_business_date", "business_id", "estimate_date"),
    )

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)

    estimate_no = db.Column(db.String(64), nullable=False)
    estimate_date = db.Column(db.Date, nullable=False)
    customer_name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, index=True)  # Draft, Sent, Accepted, Rejected

    subtotal_cents = db.Column(db.BigInteger, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.BigInteger, nullable=False)
    total_cents = db.Column(db.BigInteger, nullable=False)

    converted_invoice_id = db.Column(db.String(64), nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "EstimateLine",
        back_populates="estimate",
        order_by="EstimateLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_converted(self) -> bool:
        return self.converted_invoice_id is not None

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "estimate_no": self.estimate_no,
            "date": to_iso_date(self.estimate_date),
            "customer_name": self.customer_name,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "converted_invoice_id": self.converted_invoice_id,
            "converted_at": to_utc_z(self.converted_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class EstimateLine(db.Model):
    __tablename__ = "estimate_lines"
    __table_args__ = (
        db.ForeignKeyConstraint(
            ["business_id", "estimate_id"],
            ["estimates.business_id", "estimates.id"],
            name="fk_estimate_lines_estimate",
            ondelete="CASCADE",
        ),
        db.Index("ix_estimate_lines_estimate", "business_id", "estimate_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=False)
    estimate_id = db.Column(db.String(64), nullable=False)
    position = db.Column(db.Integer, nullable=False)

    # NULL for free text lines
    product_id = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.BigInteger, nullable=False)

    estimate = db.relationship("Estimate", back_populates="lines")

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
