# Overview: Pytest coverage for purchase posting, purchase status changes and expenses.

import pytest

from billing.errors import NotFoundError, ProductNotFoundError, ValidationError
from billing.models import AuditLog, Expense, LedgerEntry, Party, Product, Purchase, PurchaseLine
from billing.services import expense_service, purchase_service


def purchase_payload(purchase_id="pur-1", status="Unpaid", items=None, **fields):
    data = {
        "id": purchase_id,
        "invoice_no": "MW-778",
        "date": "2026-03-02",
        "party_name": "Metro Wholesale",
        "due_in": "15 days",
        "status": status,
        "items": items if items is not None else [
            {"product_id": "p1", "quantity": 5, "rate_cents": 7000},
            {"name": "Cable Ties", "quantity": 100, "rate_cents": 150},
        ],
    }
    data.update(fields)
    return data


class TestCreatePurchase:
    def test_posts_stock_ledger_and_payable(self, db_session, business, actor, widget, supplier):
        purchase, created = purchase_service.create_purchase(business.id, purchase_payload(), actor)

        assert created is True
        # 5 x 70.00 + 100 x 1.50
        assert purchase.amount_cents == 50000
        assert purchase.unpaid_amount_cents == 50000

        p1 = db_session.get(Product, (business.id, "p1"))
        assert (p1.stock, p1.version_id) == (15, 2)
        # Catalog price is not touched by the purchase rate
        assert p1.price_cents == 10000

        assert db_session.get(Party, (business.id, "s1")).balance_cents == -50000

        ledger = db_session.get(LedgerEntry, (business.id, "pur-1"))
        assert ledger.type == "Purchase"
        assert ledger.status == "Unpaid"
        assert ledger.txn_no == "MW-778"
        assert ledger.amount_cents == 50000

        audit = db_session.query(AuditLog).filter_by(action="CREATE_PURCHASE").one()
        assert audit.entity_id == "pur-1"

    def test_unlinked_line_creates_product(self, db_session, business, actor, widget, supplier):
        purchase_service.create_purchase(business.id, purchase_payload(), actor)

        ties = db_session.query(Product).filter_by(business_id=business.id, name="Cable Ties").one()
        assert ties.stock == 100
        assert ties.price_cents == 150
        assert ties.description == "Auto-added from Purchase"

        line = db_session.query(PurchaseLine).filter_by(name="Cable Ties").one()
        assert line.product_id == ties.id

    def test_linked_line_takes_product_name(self, db_session, business, actor, widget, supplier):
        purchase, _ = purchase_service.create_purchase(business.id, purchase_payload(), actor)
        assert purchase.lines[0].name == "Widget"

    def test_paid_purchase_leaves_supplier_balance(self, db_session, business, actor, widget, supplier):
        purchase, _ = purchase_service.create_purchase(business.id, purchase_payload(status="Paid"), actor)

        assert purchase.unpaid_amount_cents == 0
        assert db_session.get(Party, (business.id, "s1")).balance_cents == 0
        assert db_session.get(LedgerEntry, (business.id, "pur-1")).status == "Paid"

    def test_client_amount_is_ignored(self, db_session, business, actor, widget, supplier):
        purchase, _ = purchase_service.create_purchase(
            business.id, purchase_payload(amount_cents=1, amount=1), actor
        )
        assert purchase.amount_cents == 50000

    def test_reposting_same_id_applies_once(self, db_session, business, actor, widget, supplier):
        purchase_service.create_purchase(business.id, purchase_payload(), actor)
        again, created = purchase_service.create_purchase(business.id, purchase_payload(), actor)

        assert created is False
        assert again.id == "pur-1"
        assert db_session.get(Product, (business.id, "p1")).stock == 15
        assert db_session.get(Party, (business.id, "s1")).balance_cents == -50000
        assert db_session.query(Purchase).count() == 1

    def test_unknown_linked_product_persists_nothing(self, db_session, business, actor, widget, supplier):
        payload = purchase_payload(items=[
            {"product_id": "p1", "quantity": 5, "rate_cents": 7000},
            {"product_id": "ghost", "quantity": 1, "rate_cents": 100},
        ])
        with pytest.raises(ProductNotFoundError):
            purchase_service.create_purchase(business.id, payload, actor)

        assert db_session.get(Product, (business.id, "p1")).stock == 10
        assert db_session.query(Purchase).count() == 0
        assert db_session.query(LedgerEntry).count() == 0
        assert db_session.get(Party, (business.id, "s1")).balance_cents == 0

    @pytest.mark.parametrize("items", [
        [],
        [{"quantity": 1, "rate_cents": 100}],
        [{"product_id": "p1", "quantity": 0, "rate_cents": 100}],
        [{"product_id": "p1", "quantity": 1, "rate_cents": -5}],
        [{"product_id": "p1", "quantity": 1}],
    ])
    def test_invalid_items(self, db_session, business, actor, widget, items):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(business.id, purchase_payload(items=items), actor)

    def test_invalid_status(self, db_session, business, actor, widget):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(business.id, purchase_payload(status="Pending"), actor)


class TestPurchaseStatus:
    def test_settle_and_reopen(self, db_session, business, actor, widget, supplier):
        purchase_service.create_purchase(business.id, purchase_payload(), actor)

        purchase = purchase_service.update_purchase_status(business.id, "pur-1", "Paid", actor)
        assert purchase.unpaid_amount_cents == 0
        assert db_session.get(Party, (business.id, "s1")).balance_cents == 0
        assert db_session.get(LedgerEntry, (business.id, "pur-1")).status == "Paid"

        purchase = purchase_service.update_purchase_status(business.id, "pur-1", "Unpaid", actor)
        assert purchase.unpaid_amount_cents == 50000
        assert db_session.get(Party, (business.id, "s1")).balance_cents == -50000

    def test_same_status_changes_nothing(self, db_session, business, actor, widget, supplier):
        purchase_service.create_purchase(business.id, purchase_payload(), actor)
        purchase_service.update_purchase_status(business.id, "pur-1", "Unpaid", actor)

        assert db_session.get(Party, (business.id, "s1")).balance_cents == -50000
        assert db_session.query(AuditLog).filter_by(action="UPDATE_PURCHASE_STATUS").count() == 0

    def test_missing_purchase(self, db_session, business, actor):
        with pytest.raises(NotFoundError):
            purchase_service.update_purchase_status(business.id, "nope", "Paid", actor)


def test_list_purchases_filters_by_status(db_session, business, actor, widget, supplier):
    purchase_service.create_purchase(business.id, purchase_payload("pur-1"), actor)
    purchase_service.create_purchase(
        business.id,
        purchase_payload("pur-2", status="Paid", items=[{"product_id": "p1", "quantity": 1, "rate_cents": 7000}]),
        actor,
    )

    assert {p.id for p in purchase_service.list_purchases(business.id)} == {"pur-1", "pur-2"}
    assert [p.id for p in purchase_service.list_purchases(business.id, status="Paid")] == ["pur-2"]


class TestExpenses:
    def payload(self, **fields):
        data = {
            "id": "exp-20260302a1b2",
            "date": "2026-03-02",
            "category": "Rent",
            "amount_cents": 1500000,
            "description": "March shop rent",
            "payment_mode": "Bank Transfer",
        }
        data.update(fields)
        return data

    def test_records_expense_and_ledger(self, db_session, business, actor):
        expense, created = expense_service.record_expense(business.id, self.payload(), actor)

        assert created is True
        assert expense.payment_mode == "Bank Transfer"

        ledger = db_session.get(LedgerEntry, (business.id, "exp-20260302a1b2"))
        assert ledger.type == "Expense"
        assert ledger.txn_no == "EXP-a1b2"
        assert ledger.party_name == "March shop rent"
        assert ledger.description == "Rent"
        assert ledger.status == "Paid"
        assert ledger.amount_cents == 1500000

        assert db_session.query(AuditLog).filter_by(action="CREATE_EXPENSE").count() == 1

    def test_payment_mode_defaults_to_cash(self, db_session, business, actor):
        payload = self.payload()
        del payload["payment_mode"]
        expense, _ = expense_service.record_expense(business.id, payload, actor)
        assert expense.payment_mode == "Cash"

    def test_reposting_same_id_applies_once(self, db_session, business, actor):
        expense_service.record_expense(business.id, self.payload(), actor)
        _, created = expense_service.record_expense(business.id, self.payload(amount_cents=1), actor)

        assert created is False
        assert db_session.query(Expense).count() == 1
        assert db_session.query(LedgerEntry).one().amount_cents == 1500000

    @pytest.mark.parametrize("fields", [
        {"amount_cents": 0},
        {"amount_cents": -100},
        {"amount_cents": "abc"},
        {"category": ""},
        {"description": None},
        {"payment_mode": "Cheque"},
    ])
    def test_invalid_expense(self, db_session, business, actor, fields):
        with pytest.raises(ValidationError):
            expense_service.record_expense(business.id, self.payload(**fields), actor)

    def test_list_by_category(self, db_session, business, actor):
        expense_service.record_expense(business.id, self.payload(), actor)
        expense_service.record_expense(
            business.id, self.payload(id="exp-2", category="Utilities", description="Power bill"), actor
        )

        assert len(expense_service.list_expenses(business.id)) == 2
        assert [e.id for e in expense_service.list_expenses(business.id, category="Utilities")] == ["exp-2"]
