# Overview: Service-layer operations for business expenses and their ledger projection.

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Expense
from ..validation import (
    coerce_cents,
    coerce_choice,
    coerce_date,
    require_object,
    require_record_id,
    require_text,
)
from billing.time_utils import utcnow
from .ledger_service import (
    LEDGER_TYPE_EXPENSE,
    Actor,
    AuditRecord,
    LedgerRecord,
    append_audit_entry,
    append_ledger_entry,
    format_cents,
)


PAYMENT_MODES = ("Cash", "Online", "Bank Transfer")


def expense_txn_no(expense_id: str) -> str:
    return f"EXP-{expense_id[-4:]}"


def record_expense(business_id: int, payload: Any, actor: Actor) -> tuple[Expense, bool]:
    """
    Record a paid expense plus its ledger entry in one commit.

    Returns (expense, created); re-posting an existing id returns the stored
    expense with created=False.
    """
    data = require_object(payload, "expense")

    expense_id = require_record_id(data.get("id"), "id")
    expense_date = coerce_date(data.get("date"), "date", default=utcnow().date())
    category = require_text(data.get("category"), "category", 64)
    amount_cents = coerce_cents(data.get("amount_cents"), "amount_cents")
    if amount_cents == 0:
        raise ValidationError("amount_cents must be greater than 0")
    description = require_text(data.get("description"), "description")
    payment_mode = coerce_choice(data.get("payment_mode", "Cash"), "payment_mode", PAYMENT_MODES)

    existing = db.session.get(Expense, (business_id, expense_id))
    if existing is not None:
        return existing, False

    expense = Expense(
        business_id=business_id,
        id=expense_id,
        expense_date=expense_date,
        category=category,
        amount_cents=amount_cents,
        description=description,
        payment_mode=payment_mode,
        created_by_user_id=actor.user_id,
    )

    try:
        db.session.add(expense)

        # Expenses have no counterparty; the description stands in for it
        append_ledger_entry(business_id=business_id, record=LedgerRecord(
            id=expense_id,
            entry_date=expense_date,
            type=LEDGER_TYPE_EXPENSE,
            txn_no=expense_txn_no(expense_id),
            party_name=description,
            amount_cents=amount_cents,
            status="Paid",
            description=category,
        ))

        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="CREATE_EXPENSE",
            details=f"Recorded {category} expense: {format_cents(amount_cents)} via {payment_mode}",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="expense",
            entity_id=expense_id,
            amount_cents=amount_cents,
        ))

        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = db.session.get(Expense, (business_id, expense_id))
        if existing is not None:
            return existing, False
        raise ConflictError("Expense id collides with an existing record", details={"expense_id": expense_id})

    return expense, True


def list_expenses(business_id: int, *, category: str | None = None, limit: int = 200) -> list[Expense]:
    query = db.session.query(Expense).filter(Expense.business_id == business_id)
    if category:
        query = query.filter(Expense.category == category)
    return query.order_by(Expense.expense_date.desc(), Expense.created_at.desc()).limit(limit).all()
