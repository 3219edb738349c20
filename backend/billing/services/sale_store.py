# Overview: Storage seam for the sale pipeline; SQLAlchemy implementation of the catalog, rate-limit and commit primitives.

"""
Sale storage interface.

The rate limiter, pricing engine and commit coordinator never touch
db.session directly. They receive a SaleStore, so they run unchanged
against the database (SqlSaleStore) or an in-memory store in tests.

Contract every implementation must honor:
- load_products: all requested rows come from one consistent read.
- swap_rate_window: compare-and-swap; returns False if the stored window
  is no longer `expected`.
- apply_sale: one indivisible unit. Either every decrement, the invoice,
  the ledger entry, the balance change and the audit entry become visible,
  or none do. Raises DuplicateInvoice if the invoice id already exists and
  SnapshotConflict if a product version moved since it was priced.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Invoice, InvoiceLine, Product, RateLimitWindow
from .ledger_service import AuditRecord, LedgerRecord, append_audit_entry, append_ledger_entry
from .party_service import adjust_party_balance


class StorageError(Exception):
    """Backing store unreachable or failed mid-operation."""


class SnapshotConflict(Exception):
    """A product changed between the pricing read and the commit."""

    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} changed since it was priced")
        self.product_id = product_id


class DuplicateInvoice(Exception):
    """An invoice with this id is already committed."""

    def __init__(self, invoice_id: str):
        super().__init__(f"Invoice {invoice_id} already exists")
        self.invoice_id = invoice_id


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: str
    name: str
    unit: str
    price_cents: int
    stock: int
    version: int


@dataclass(frozen=True)
class RateWindow:
    count: int
    reset_at: datetime


@dataclass(frozen=True)
class StockDecrement:
    product_id: str
    quantity: int
    expected_version: int


@dataclass(frozen=True)
class CommittedSale:
    invoice_id: str
    total_cents: int


@dataclass(frozen=True)
class InvoiceLineRecord:
    position: int
    product_id: str | None
    product_name: str
    unit: str | None
    quantity: int
    unit_price_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class InvoiceRecord:
    id: str
    invoice_no: str
    invoice_date: date
    customer_name: str
    status: str
    subtotal_cents: int
    tax_rate_bps: int
    tax_cents: int
    total_cents: int
    created_by_user_id: int | None
    lines: tuple[InvoiceLineRecord, ...] = ()


@dataclass(frozen=True)
class SaleRecords:
    """Everything one sale commit writes."""
    invoice: InvoiceRecord
    ledger: LedgerRecord
    audit: AuditRecord
    decrements: tuple[StockDecrement, ...] = ()
    # Customer whose receivable grows when the invoice starts unpaid
    receivable_party: str | None = None
    receivable_delta_cents: int = 0


class SaleStore:
    """Abstract storage used by the sale pipeline."""

    def get_rate_window(self, user_id: int) -> RateWindow | None:
        raise NotImplementedError

    def swap_rate_window(self, user_id: int, expected: RateWindow | None, new: RateWindow) -> bool:
        raise NotImplementedError

    def find_committed_sale(self, business_id: int, invoice_id: str) -> CommittedSale | None:
        raise NotImplementedError

    def load_products(self, business_id: int, product_ids: list[str]) -> dict[str, ProductSnapshot]:
        raise NotImplementedError

    def apply_sale(self, business_id: int, records: SaleRecords) -> None:
        raise NotImplementedError


class SqlSaleStore(SaleStore):
    """SaleStore on the Flask-SQLAlchemy session. Requires an app context."""

    def get_rate_window(self, user_id: int) -> RateWindow | None:
        try:
            row = db.session.execute(
                select(RateLimitWindow.request_count, RateLimitWindow.window_reset_at)
                .where(RateLimitWindow.user_id == user_id)
            ).first()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError("Failed to read rate limit window") from exc

        if row is None:
            return None
        return RateWindow(count=row.request_count, reset_at=row.window_reset_at)

    def swap_rate_window(self, user_id: int, expected: RateWindow | None, new: RateWindow) -> bool:
        try:
            if expected is None:
                db.session.execute(
                    insert(RateLimitWindow)
                    .values(user_id=user_id, request_count=new.count, window_reset_at=new.reset_at)
                )
                db.session.commit()
                return True

            result = db.session.execute(
                update(RateLimitWindow)
                .where(
                    RateLimitWindow.user_id == user_id,
                    RateLimitWindow.request_count == expected.count,
                    RateLimitWindow.window_reset_at == expected.reset_at,
                )
                .values(request_count=new.count, window_reset_at=new.reset_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                return False
            db.session.commit()
            return True
        except IntegrityError:
            # Another request created the window first
            db.session.rollback()
            return False
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError("Failed to update rate limit window") from exc

    def find_committed_sale(self, business_id: int, invoice_id: str) -> CommittedSale | None:
        try:
            row = db.session.execute(
                select(Invoice.id, Invoice.total_cents)
                .where(Invoice.business_id == business_id, Invoice.id == invoice_id)
            ).first()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError("Failed to read invoice") from exc

        if row is None:
            return None
        return CommittedSale(invoice_id=row.id, total_cents=row.total_cents)

    def load_products(self, business_id: int, product_ids: list[str]) -> dict[str, ProductSnapshot]:
        if not product_ids:
            return {}
        try:
            # Single SELECT: every row comes from the same statement snapshot
            rows = db.session.execute(
                select(
                    Product.id,
                    Product.name,
                    Product.unit,
                    Product.price_cents,
                    Product.stock,
                    Product.version_id,
                ).where(Product.business_id == business_id, Product.id.in_(product_ids))
            ).all()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError("Failed to read catalog") from exc

        return {
            row.id: ProductSnapshot(
                product_id=row.id,
                name=row.name,
                unit=row.unit,
                price_cents=row.price_cents,
                stock=row.stock,
                version=row.version_id,
            )
            for row in rows
        }

    def apply_sale(self, business_id: int, records: SaleRecords) -> None:
        inv = records.invoice
        try:
            if db.session.get(Invoice, (business_id, inv.id)) is not None:
                raise DuplicateInvoice(inv.id)

            for dec in records.decrements:
                # Conditional on the priced version: any concurrent sale or
                # purchase touching this product bumps version_id and fails us.
                result = db.session.execute(
                    update(Product)
                    .where(
                        Product.business_id == business_id,
                        Product.id == dec.product_id,
                        Product.version_id == dec.expected_version,
                        Product.stock >= dec.quantity,
                    )
                    .values(
                        stock=Product.stock - dec.quantity,
                        version_id=Product.version_id + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise SnapshotConflict(dec.product_id)

            invoice = Invoice(
                business_id=business_id,
                id=inv.id,
                invoice_no=inv.invoice_no,
                invoice_date=inv.invoice_date,
                customer_name=inv.customer_name,
                status=inv.status,
                subtotal_cents=inv.subtotal_cents,
                tax_rate_bps=inv.tax_rate_bps,
                tax_cents=inv.tax_cents,
                total_cents=inv.total_cents,
                created_by_user_id=inv.created_by_user_id,
            )
            invoice.lines = [
                InvoiceLine(
                    business_id=business_id,
                    invoice_id=inv.id,
                    position=line.position,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    unit=line.unit,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.line_total_cents,
                )
                for line in inv.lines
            ]
            db.session.add(invoice)

            append_ledger_entry(business_id=business_id, record=records.ledger)

            if records.receivable_party:
                adjust_party_balance(business_id, records.receivable_party, records.receivable_delta_cents)

            append_audit_entry(business_id=business_id, record=records.audit)

            db.session.commit()
        except (DuplicateInvoice, SnapshotConflict):
            db.session.rollback()
            raise
        except IntegrityError as exc:
            # Lost an insert race on the invoice (or its ledger) primary key
            db.session.rollback()
            raise DuplicateInvoice(inv.id) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError("Failed to commit sale") from exc
