# Overview: Pytest coverage for product and party management.

import pytest

from billing.errors import ConflictError, NotFoundError, ValidationError
from billing.models import AuditLog, Party, Product
from billing.services import party_service, products_service


class TestProducts:
    def test_create_with_opening_stock(self, db_session, business, actor):
        product = products_service.create_product(
            business.id,
            {"id": "p9", "name": "Bolt M6", "price_cents": 1250, "stock": 40, "unit": "pcs"},
            actor,
        )

        assert product.id == "p9"
        assert product.version_id == 1
        assert product.category == "General"
        assert db_session.query(AuditLog).filter_by(action="CREATE_PRODUCT").count() == 1

    def test_create_generates_id(self, db_session, business, actor):
        product = products_service.create_product(business.id, {"name": "Nut", "price_cents": 50}, actor)
        assert len(product.id) == 32

    def test_duplicate_id_conflicts(self, db_session, business, actor, widget):
        with pytest.raises(ConflictError):
            products_service.create_product(business.id, {"id": "p1", "name": "Again", "price_cents": 1}, actor)

    @pytest.mark.parametrize("payload", [
        {"price_cents": 100},
        {"name": "X"},
        {"name": "X", "price_cents": -1},
        {"name": "X", "price_cents": 1.5},
        {"name": "X", "price_cents": 100, "stock": -2},
        {"name": "X", "price_cents": 100, "version_id": 9},
    ])
    def test_create_rejects_bad_payload(self, db_session, business, actor, payload):
        with pytest.raises(ValidationError):
            products_service.create_product(business.id, payload, actor)

    def test_update_price_bumps_version(self, db_session, business, actor, widget):
        product = products_service.update_product(business.id, "p1", {"price_cents": 12000}, actor)

        assert product.price_cents == 12000
        assert product.version_id == 2
        entry = db_session.query(AuditLog).filter_by(action="UPDATE_PRODUCT").one()
        assert "price_cents" in entry.details

    def test_stock_is_not_directly_editable(self, db_session, business, actor, widget):
        with pytest.raises(ValidationError):
            products_service.update_product(business.id, "p1", {"stock": 500}, actor)
        assert db_session.get(Product, (business.id, "p1")).stock == 10

    def test_update_missing_product(self, db_session, business, actor):
        with pytest.raises(NotFoundError):
            products_service.update_product(business.id, "ghost", {"name": "X"}, actor)

    def test_restock_bumps_version(self, db_session, business, widget):
        assert products_service.restock_product(business.id, "p1", 4) is True
        db_session.commit()

        product = db_session.get(Product, (business.id, "p1"))
        assert (product.stock, product.version_id) == (14, 2)
        assert products_service.restock_product(business.id, "ghost", 4) is False

    def test_list_is_business_scoped_and_paginated(self, db_session, business, other_business, actor, widget, gadget):
        db_session.add(Product(business_id=other_business.id, id="x1", name="Foreign", price_cents=1))
        db_session.commit()

        everything = products_service.list_products(business.id)
        assert [p["id"] for p in everything["items"]] == ["p2", "p1"]
        assert "pagination" not in everything

        page = products_service.list_products(business.id, page=2, per_page=1)
        assert [p["id"] for p in page["items"]] == ["p1"]
        assert page["pagination"] == {
            "page": 2,
            "per_page": 1,
            "total": 2,
            "total_pages": 2,
            "has_next": False,
            "has_prev": True,
        }

    def test_get_product_of_other_business_is_not_found(self, db_session, other_business, widget):
        with pytest.raises(NotFoundError):
            products_service.get_product(other_business.id, "p1")


class TestParties:
    def test_create_party(self, db_session, business, actor):
        party = party_service.create_party(
            business.id, {"name": "Kiran Stores", "type": "Customer", "phone": "98200 00000"}, actor
        )

        assert party.balance_cents == 0
        assert db_session.query(AuditLog).filter_by(action="CREATE_PARTY").one().entity_id == party.id

    def test_balance_is_not_writable(self, db_session, business, actor):
        with pytest.raises(ValidationError):
            party_service.create_party(
                business.id, {"name": "Kiran", "type": "Customer", "balance_cents": 999}, actor
            )

    def test_duplicate_name_conflicts(self, db_session, business, actor, customer):
        with pytest.raises(ConflictError):
            party_service.create_party(business.id, {"name": "Ravi Kumar", "type": "Supplier"}, actor)

    def test_same_name_in_other_business_is_fine(self, db_session, other_business, actor, customer):
        party = party_service.create_party(other_business.id, {"name": "Ravi Kumar", "type": "Customer"}, actor)
        assert party.business_id == other_business.id

    def test_unknown_type_rejected(self, db_session, business, actor):
        with pytest.raises(ValidationError):
            party_service.create_party(business.id, {"name": "Kiran", "type": "Vendor"}, actor)

    def test_adjust_balance_by_name(self, db_session, business, customer):
        assert party_service.adjust_party_balance(business.id, "Ravi Kumar", 500) is True
        assert party_service.adjust_party_balance(business.id, "Ravi Kumar", -200) is True
        db_session.commit()
        assert db_session.get(Party, (business.id, "c1")).balance_cents == 300

    def test_adjust_unknown_or_zero_is_a_no_op(self, db_session, business, customer):
        assert party_service.adjust_party_balance(business.id, "Nobody", 500) is False
        assert party_service.adjust_party_balance(business.id, "Ravi Kumar", 0) is False
        assert party_service.adjust_party_balance(business.id, "", 500) is False

    def test_list_filters_by_type(self, db_session, business, customer, supplier):
        assert [p.name for p in party_service.list_parties(business.id)] == ["Metro Wholesale", "Ravi Kumar"]
        assert [p.name for p in party_service.list_parties(business.id, party_type="Supplier")] == ["Metro Wholesale"]
