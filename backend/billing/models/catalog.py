from __future__ import annotations

import uuid

from ..extensions import db
from billing.time_utils import to_utc_z


def new_record_id() -> str:
    return uuid.uuid4().hex


class Product(db.Model):
    """
    Catalog product (authoritative price and stock).

    PRICE AUTHORITY: price_cents is the only price a sale is ever charged at.
    Client-submitted prices on sale lines are ignored.

    STOCK: never negative. Decremented only by the sale commit and
    incremented by purchases/invoice deletion, always with a version bump
    so that a sale priced against an older snapshot cannot commit.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_business_name", "business_id", "name"),
    )

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), primary_key=True)
    id = db.Column(db.String(64), primary_key=True, default=new_record_id)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="General")
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Party(db.Model):
    """
    Customer or supplier.

    balance_cents: positive = to collect (customer owes us),
    negative = to pay (we owe the supplier).

    Invoices and purchases reference parties by name (free text), so the
    name is unique within a business.
    """
    __tablename__ = "parties"
    __table_args__ = (
        db.UniqueConstraint("business_id", "name", name="uq_parties_business_name"),
    )

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), primary_key=True)
    id = db.Column(db.String(64), primary_key=True, default=new_record_id)

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # Customer, Supplier
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    gstin = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "type": self.type,
            "phone": self.phone,
            "email": self.email,
            "gstin": self.gstin,
            "address": self.address,
            "balance_cents": self.balance_cents,
            "created_at": to_utc_z(self.created_at),
        }
