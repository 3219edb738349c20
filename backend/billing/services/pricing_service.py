# Overview: Sale pricing and stock validation against an authoritative catalog snapshot.

"""
Sale Pricing & Stock Engine

WHY: The client only says WHAT it sells (product ids + quantities). HOW MUCH
it costs is decided here, from the catalog, never from client-sent prices.

Rules:
- Every inventory line must reference a product of this business, else the
  whole sale fails with ProductNotFoundError.
- Quantities of the same product on several lines are summed before the
  stock check, so two lines of 6 cannot pass against a stock of 10.
- Non-inventory (free text) lines are priced at zero. There is no
  server-side price source for them, and client prices are not trusted.
- price_and_validate is pure: no reads, no writes. price_sale adds the one
  batched catalog read.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import InsufficientStockError, ProductNotFoundError
from .sale_store import ProductSnapshot, SaleStore, StockDecrement


DEFAULT_TAX_RATE_BPS = 1800  # 18%
NON_INVENTORY_PRICE_CENTS = 0


@dataclass(frozen=True)
class DraftItem:
    """Untrusted client line: either a product reference or free text."""
    quantity: int
    product_id: str | None = None
    description: str | None = None

    @property
    def is_inventory(self) -> bool:
        return bool(self.product_id)


@dataclass(frozen=True)
class PricedLine:
    position: int
    product_id: str | None
    product_name: str
    unit: str | None
    quantity: int
    unit_price_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class PricedSale:
    lines: tuple[PricedLine, ...]
    subtotal_cents: int
    tax_rate_bps: int
    tax_cents: int
    total_cents: int
    decrements: tuple[StockDecrement, ...]


def referenced_product_ids(items: list[DraftItem]) -> list[str]:
    """Distinct product ids in first-seen order."""
    seen: dict[str, None] = {}
    for item in items:
        if item.is_inventory:
            seen.setdefault(item.product_id, None)
    return list(seen)


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """subtotal x rate, rounded half-up to the cent."""
    tax = Decimal(subtotal_cents) * Decimal(tax_rate_bps) / Decimal(10000)
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def price_and_validate(
    items: list[DraftItem],
    snapshot: dict[str, ProductSnapshot],
    *,
    tax_rate_bps: int = DEFAULT_TAX_RATE_BPS,
    check_stock: bool = True,
) -> PricedSale:
    requested: dict[str, int] = {}
    for item in items:
        if not item.is_inventory:
            continue
        if item.product_id not in snapshot:
            raise ProductNotFoundError(item.product_id)
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    for product_id, qty in requested.items():
        product = snapshot[product_id]
        if check_stock and product.stock < qty:
            raise InsufficientStockError(
                product_id,
                available=product.stock,
                requested=qty,
                product_name=product.name,
            )

    lines = []
    for position, item in enumerate(items, start=1):
        if item.is_inventory:
            product = snapshot[item.product_id]
            unit_price = product.price_cents
            name = product.name
            unit = product.unit
        else:
            unit_price = NON_INVENTORY_PRICE_CENTS
            name = item.description or "Custom item"
            unit = None

        lines.append(PricedLine(
            position=position,
            product_id=item.product_id if item.is_inventory else None,
            product_name=name,
            unit=unit,
            quantity=item.quantity,
            unit_price_cents=unit_price,
            line_total_cents=unit_price * item.quantity,
        ))

    subtotal = sum(line.line_total_cents for line in lines)
    tax = compute_tax_cents(subtotal, tax_rate_bps)

    decrements = tuple(
        StockDecrement(
            product_id=product_id,
            quantity=qty,
            expected_version=snapshot[product_id].version,
        )
        for product_id, qty in requested.items()
    )

    return PricedSale(
        lines=tuple(lines),
        subtotal_cents=subtotal,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax,
        total_cents=subtotal + tax,
        decrements=decrements,
    )


def price_sale(
    store: SaleStore,
    business_id: int,
    items: list[DraftItem],
    *,
    tax_rate_bps: int = DEFAULT_TAX_RATE_BPS,
    check_stock: bool = True,
) -> PricedSale:
    """
    Read the referenced products in one batch and price against that snapshot.

    check_stock=False prices a quote: unknown products still fail, stock
    levels are not looked at.
    """
    snapshot = store.load_products(business_id, referenced_product_ids(items))
    return price_and_validate(items, snapshot, tax_rate_bps=tax_rate_bps, check_stock=check_stock)
