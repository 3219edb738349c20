# Overview: Pytest coverage for create_sale end to end against the in-memory SaleStore.

"""
Sale creation pipeline tests.

These run the real rate limiter, pricing engine and commit coordinator
against InMemorySaleStore (no database), so every failure mode can be
injected and every side effect counted.
"""

from datetime import date, datetime, timedelta

import pytest

from billing.errors import (
    ConflictError,
    InsufficientStockError,
    InternalError,
    PermissionDeniedError,
    ProductNotFoundError,
    RateLimitedError,
    RateLimitUnavailableError,
    StockConflictError,
    UnauthenticatedError,
    ValidationError,
)
from billing.services.ledger_service import LEDGER_TYPE_EXPENSE, Actor, LedgerRecord
from billing.services.sales_service import SalePolicy, create_sale

from fakes import InMemorySaleStore


BIZ = 1
T0 = datetime(2026, 3, 1, 9, 0, 0)
ACTOR = Actor(user_id=42, business_id=BIZ, user_name="Asha")


def sale_payload(invoice_id="inv-1", items=None, **invoice_fields):
    invoice = {
        "id": invoice_id,
        "invoice_no": "INV-0001",
        "date": "2026-03-01",
        "customer_name": "Ravi Kumar",
        "status": "Paid",
        "items": items if items is not None else [
            {"product_id": "p1", "quantity": 2},
            {"product_id": "p2", "quantity": 2},
        ],
    }
    invoice.update(invoice_fields)
    return {"business_id": BIZ, "invoice": invoice}


@pytest.fixture
def store():
    s = InMemorySaleStore()
    s.add_product(BIZ, "p1", name="Widget", price_cents=10000, stock=10)
    s.add_product(BIZ, "p2", name="Gadget", price_cents=2500, stock=3)
    s.add_party(BIZ, "Ravi Kumar")
    return s


class TestHappyPath:
    def test_creates_invoice_with_server_prices(self, store):
        result = create_sale(store, ACTOR, sale_payload(), now=T0)

        assert result.invoice_id == "inv-1"
        assert result.total_cents == 29500
        assert result.to_dict() == {
            "success": True,
            "invoice_id": "inv-1",
            "total_cents": 29500,
            "total": 295.0,
        }

        records = store.invoices[(BIZ, "inv-1")]
        assert records.invoice.subtotal_cents == 25000
        assert records.invoice.tax_cents == 4500
        assert records.invoice.tax_rate_bps == 1800
        assert store.stock(BIZ, "p1") == 8
        assert store.stock(BIZ, "p2") == 1

    def test_writes_ledger_and_audit(self, store):
        create_sale(store, ACTOR, sale_payload(), now=T0)

        ledger = store.ledger[(BIZ, "inv-1")]
        assert ledger.type == "Sales Invoice"
        assert ledger.txn_no == "INV-0001"
        assert ledger.party_name == "Ravi Kumar"
        assert ledger.amount_cents == 29500
        assert ledger.status == "Paid"

        assert len(store.audit) == 1
        _, audit = store.audit[0]
        assert audit.action == "CREATE_SALE"
        assert audit.user_id == 42
        assert audit.user_name == "Asha"
        assert "295.00" in audit.details

    def test_client_prices_are_ignored(self, store):
        items = [{"product_id": "p1", "quantity": 1, "price": 1, "unit_price_cents": 1, "total": 1}]
        result = create_sale(store, ACTOR, sale_payload(items=items, total=1), now=T0)
        assert result.total_cents == 11800

    def test_pending_invoice_credits_customer_receivable(self, store):
        create_sale(store, ACTOR, sale_payload(status="Pending"), now=T0)
        assert store.balances[(BIZ, "Ravi Kumar")] == 29500
        assert store.ledger[(BIZ, "inv-1")].status == "Unpaid"

    def test_paid_invoice_leaves_balance_alone(self, store):
        create_sale(store, ACTOR, sale_payload(status="Paid"), now=T0)
        assert store.balances[(BIZ, "Ravi Kumar")] == 0

    def test_default_and_explicit_tax_rate(self, store):
        explicit = create_sale(store, ACTOR, sale_payload("a", items=[{"product_id": "p1", "quantity": 1}], tax_rate=5), now=T0)
        zero = create_sale(store, ACTOR, sale_payload("b", items=[{"product_id": "p1", "quantity": 1}], tax_rate=0), now=T0)
        default = create_sale(store, ACTOR, sale_payload("c", items=[{"product_id": "p1", "quantity": 1}]), now=T0)
        assert explicit.total_cents == 10500
        assert zero.total_cents == 10000
        assert default.total_cents == 11800

    def test_policy_default_tax_rate_applies_when_omitted(self, store):
        policy = SalePolicy(default_tax_rate_bps=500)
        result = create_sale(store, ACTOR, sale_payload(items=[{"product_id": "p1", "quantity": 1}]), policy=policy, now=T0)
        assert result.total_cents == 10500

    def test_business_id_defaults_to_actor_business(self, store):
        payload = sale_payload()
        del payload["business_id"]
        assert create_sale(store, ACTOR, payload, now=T0).invoice_id == "inv-1"

    def test_mixed_inventory_and_free_text_lines(self, store):
        items = [
            {"product_id": "p1", "quantity": 1},
            {"product_name": "Delivery", "quantity": 1},
        ]
        result = create_sale(store, ACTOR, sale_payload(items=items), now=T0)
        lines = store.invoices[(BIZ, "inv-1")].invoice.lines
        assert [line.product_name for line in lines] == ["Widget", "Delivery"]
        assert lines[1].unit_price_cents == 0
        assert result.total_cents == 11800
        assert store.stock(BIZ, "p1") == 9


class TestIdempotency:
    def test_same_invoice_id_twice_applies_once(self, store):
        first = create_sale(store, ACTOR, sale_payload(), now=T0)
        second = create_sale(store, ACTOR, sale_payload(), now=T0)

        assert second.to_dict() == first.to_dict()
        assert second.replayed is True
        assert store.stock(BIZ, "p1") == 8
        assert len(store.ledger) == 1
        assert len(store.audit) == 1

    def test_replay_does_not_reprice_or_recheck_stock(self, store):
        create_sale(store, ACTOR, sale_payload(items=[{"product_id": "p2", "quantity": 3}]), now=T0)
        assert store.stock(BIZ, "p2") == 0

        # Stock is now 0, yet the retry still succeeds with the original total
        again = create_sale(store, ACTOR, sale_payload(items=[{"product_id": "p2", "quantity": 3}]), now=T0)
        assert again.total_cents == 8850

    def test_duplicate_detected_at_commit_resolves_to_existing(self, store):
        # Invoice lands between the replay lookup and the commit
        payload = sale_payload(items=[{"product_id": "p1", "quantity": 2}])
        original_find = store.find_committed_sale
        calls = {"n": 0}

        def find_then_race(business_id, invoice_id):
            calls["n"] += 1
            if calls["n"] == 1:
                create_sale(store, ACTOR, payload, now=T0)
                return None
            return original_find(business_id, invoice_id)

        store.find_committed_sale = find_then_race
        result = create_sale(store, ACTOR, payload, now=T0)

        assert result.invoice_id == "inv-1"
        assert result.total_cents == 23600
        assert result.replayed is True
        assert store.stock(BIZ, "p1") == 8
        assert len(store.audit) == 1

    def test_id_taken_by_expense_is_a_conflict(self, store):
        store.add_ledger_entry(BIZ, LedgerRecord(
            id="shared-1",
            entry_date=date(2026, 3, 1),
            type=LEDGER_TYPE_EXPENSE,
            txn_no="EXP-ed-1",
            party_name="Shop rent",
            amount_cents=500000,
            status=None,
        ))

        with pytest.raises(ConflictError) as exc_info:
            create_sale(store, ACTOR, sale_payload(invoice_id="shared-1"), now=T0)

        assert exc_info.value.code == "conflict"
        assert exc_info.value.details == {"invoice_id": "shared-1"}
        assert store.stock(BIZ, "p1") == 10
        assert store.stock(BIZ, "p2") == 3
        assert store.invoices == {}
        assert store.audit == []


class TestRejections:
    def test_unauthenticated(self, store):
        with pytest.raises(UnauthenticatedError):
            create_sale(store, None, sale_payload(), now=T0)
        assert store.windows == {}

    def test_foreign_business(self, store):
        with pytest.raises(PermissionDeniedError):
            create_sale(store, ACTOR, {**sale_payload(), "business_id": 2}, now=T0)

    @pytest.mark.parametrize("items", [
        [],
        [{"product_id": "p1", "quantity": 0}],
        [{"product_id": "p1", "quantity": -1}],
        [{"product_id": "p1", "quantity": 1.5}],
        [{"product_id": "p1", "quantity": "2"}, {"quantity": 1}],
        [{"product_id": 17, "quantity": 1}],
        ["not-an-object"],
    ])
    def test_invalid_items_rejected_before_rate_limit(self, store, items):
        with pytest.raises(ValidationError):
            create_sale(store, ACTOR, sale_payload(items=items), now=T0)
        assert store.windows == {}

    @pytest.mark.parametrize("field,value", [
        ("id", ""),
        ("customer_name", "  "),
        ("status", "Overdue"),
        ("tax_rate", 150),
        ("tax_rate", "abc"),
        ("date", "01/03/2026"),
    ])
    def test_invalid_invoice_fields(self, store, field, value):
        with pytest.raises(ValidationError):
            create_sale(store, ACTOR, sale_payload(**{field: value}), now=T0)

    def test_payload_must_be_an_object(self, store):
        with pytest.raises(ValidationError):
            create_sale(store, ACTOR, ["nope"], now=T0)
        with pytest.raises(ValidationError):
            create_sale(store, ACTOR, {"invoice": None}, now=T0)

    def test_unknown_product_persists_nothing(self, store):
        items = [{"product_id": "p1", "quantity": 1}, {"product_id": "ghost", "quantity": 1}]
        with pytest.raises(ProductNotFoundError):
            create_sale(store, ACTOR, sale_payload(items=items), now=T0)
        assert store.stock(BIZ, "p1") == 10
        assert store.invoices == {}
        assert store.audit == []

    def test_product_of_another_business_is_not_found(self, store):
        store.add_product(2, "foreign", price_cents=100, stock=5)
        with pytest.raises(ProductNotFoundError):
            create_sale(store, ACTOR, sale_payload(items=[{"product_id": "foreign", "quantity": 1}]), now=T0)

    def test_insufficient_stock_persists_nothing(self, store):
        items = [{"product_id": "p1", "quantity": 1}, {"product_id": "p2", "quantity": 4}]
        with pytest.raises(InsufficientStockError) as exc_info:
            create_sale(store, ACTOR, sale_payload(items=items), now=T0)
        assert exc_info.value.details == {"product_id": "p2", "available": 3, "requested": 4}
        assert store.stock(BIZ, "p1") == 10
        assert store.invoices == {}

    def test_rate_limited_on_eleventh_sale(self, store):
        for i in range(10):
            create_sale(store, ACTOR, sale_payload(f"inv-{i}", items=[{"product_name": "Svc", "quantity": 1}]), now=T0)

        with pytest.raises(RateLimitedError) as exc_info:
            create_sale(store, ACTOR, sale_payload("inv-10", items=[{"product_name": "Svc", "quantity": 1}]),
                        now=T0 + timedelta(seconds=20))
        assert exc_info.value.retry_after_seconds == 40
        assert (BIZ, "inv-10") not in store.invoices

        later = create_sale(store, ACTOR, sale_payload("inv-10", items=[{"product_name": "Svc", "quantity": 1}]),
                            now=T0 + timedelta(seconds=60))
        assert later.invoice_id == "inv-10"

    def test_rate_store_outage_fails_closed(self, store):
        store.fail_rate_reads = True
        with pytest.raises(RateLimitUnavailableError):
            create_sale(store, ACTOR, sale_payload(), now=T0)
        assert store.invoices == {}

    def test_commit_storage_failure_is_internal(self, store):
        store.fail_commits = True
        with pytest.raises(InternalError):
            create_sale(store, ACTOR, sale_payload(), now=T0)
        assert store.stock(BIZ, "p1") == 10


class TestConcurrencyAbort:
    def test_conflict_reprices_and_commits(self, store):
        # A price change lands between pricing and the first commit
        original_apply = store.apply_sale
        state = {"raced": False}

        def apply_after_price_change(business_id, records):
            if not state["raced"]:
                state["raced"] = True
                store.bump(BIZ, "p1", price_cents=20000)
            return original_apply(business_id, records)

        store.apply_sale = apply_after_price_change
        result = create_sale(store, ACTOR, sale_payload(items=[{"product_id": "p1", "quantity": 1}]), now=T0)

        # Second round priced at the new catalog price
        assert result.total_cents == 23600
        assert store.apply_calls == 2
        assert store.stock(BIZ, "p1") == 9

    def test_conflict_then_insufficient_stock(self, store):
        original_apply = store.apply_sale

        def apply_after_stock_drop(business_id, records):
            store.bump(BIZ, "p2", stock=1)
            store.apply_sale = original_apply
            return original_apply(business_id, records)

        store.apply_sale = apply_after_stock_drop
        with pytest.raises(InsufficientStockError) as exc_info:
            create_sale(store, ACTOR, sale_payload(items=[{"product_id": "p2", "quantity": 2}]), now=T0)
        assert exc_info.value.available == 1

    def test_exhausted_retries_surface_stock_conflict(self, store):
        original_apply = store.apply_sale

        def always_stale(business_id, records):
            store.bump(BIZ, "p1")
            return original_apply(business_id, records)

        store.apply_sale = always_stale
        policy = SalePolicy(commit_attempts=3)
        with pytest.raises(StockConflictError) as exc_info:
            create_sale(store, ACTOR, sale_payload(items=[{"product_id": "p1", "quantity": 1}]), policy=policy, now=T0)

        assert exc_info.value.code == "stock_conflict"
        assert exc_info.value.details == {"product_id": "p1"}
        assert store.apply_calls == 3
        assert store.stock(BIZ, "p1") == 10
        assert store.invoices == {}


def test_in_memory_store_starts_empty():
    assert InMemorySaleStore().find_committed_sale(BIZ, "x") is None
