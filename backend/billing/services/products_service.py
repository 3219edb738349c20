"""
Products Service (business-scoped)

- list_products / create_product / update_product serve the catalog API.
- Stock is NOT writable through update_product. It moves only through
  sales (sale commit), purchases and invoice deletion, and every such move
  bumps version_id so a sale priced against an older snapshot cannot commit.
"""
from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.catalog import new_record_id
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_product,
    require_record_id,
    validate_payload,
)
from .ledger_service import Actor, AuditRecord, append_audit_entry, format_cents

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "description", "unit", "price_cents", "stock"},
    required_on_create={"name", "price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "description", "unit", "price_cents"},
)


def restock_product(business_id: int, product_id: str, quantity: int) -> bool:
    """
    Increment stock and bump the version. Does not commit.

    Returns False if the product no longer exists (deleted products are not
    resurrected by restocking).
    """
    result = db.session.execute(
        update(Product)
        .where(Product.business_id == business_id, Product.id == product_id)
        .values(stock=Product.stock + quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def list_products(
    business_id: int,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Business-scoped product listing with optional pagination.

    Args:
        business_id: Business whose catalog to list
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = (
        db.session.query(Product)
        .filter(Product.business_id == business_id)
        .order_by(Product.name.asc(), Product.id.asc())
    )

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(business_id: int, payload: dict, actor: Actor) -> Product:
    """
    Create a catalog product. `stock` is the opening stock (default 0).

    Raises:
        ValidationError: bad or missing fields
        ConflictError: product id already used in this business
    """
    payload = dict(payload or {})
    product_id = payload.pop("id", None)
    product_id = require_record_id(product_id) if product_id is not None else new_record_id()

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    if db.session.get(Product, (business_id, product_id)) is not None:
        raise ConflictError("Product id already exists", details={"product_id": product_id})

    product = Product(business_id=business_id, id=product_id, **patch)

    try:
        db.session.add(product)
        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="CREATE_PRODUCT",
            details=f"Added product {product.name} at {format_cents(product.price_cents)}",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="product",
            entity_id=product_id,
        ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product id already exists", details={"product_id": product_id})
    return product


def update_product(business_id: int, product_id: str, payload: dict, actor: Actor) -> Product:
    """
    Patch descriptive fields and price. A price change bumps version_id, so
    any sale priced at the old price re-prices before it can commit.
    """
    if isinstance(payload, dict) and "stock" in payload:
        raise ValidationError("stock cannot be edited directly; record a purchase or sale instead")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    product = db.session.get(Product, (business_id, product_id))
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    for key, value in patch.items():
        setattr(product, key, value)

    if patch:
        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="UPDATE_PRODUCT",
            details=f"Updated {product.name}: {', '.join(sorted(patch.keys()))}",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="product",
            entity_id=product.id,
        ))
    db.session.commit()
    return product


def get_product(business_id: int, product_id: str) -> Product:
    product = db.session.get(Product, (business_id, product_id))
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def parse_page_args(args) -> tuple[int | None, int | None]:
    page = args.get("page")
    per_page = args.get("per_page")
    return (
        coerce_int(page, "page") if page not in (None, "") else None,
        coerce_int(per_page, "per_page") if per_page not in (None, "") else None,
    )
