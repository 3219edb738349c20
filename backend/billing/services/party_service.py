# Overview: Service-layer operations for customers and suppliers and their running balances.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError
from ..extensions import db
from ..models import Party
from ..models.catalog import new_record_id
from ..validation import ModelValidationPolicy, enforce_rules_party, require_record_id, validate_payload
from .ledger_service import Actor, AuditRecord, append_audit_entry


PARTY_TYPES = ("Customer", "Supplier")

PARTY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "phone", "email", "gstin", "address"},
    required_on_create={"name", "type"},
)


def adjust_party_balance(business_id: int, party_name: str, delta_cents: int) -> bool:
    """
    Add delta_cents to the running balance of the party called party_name.

    Single UPDATE with an arithmetic SET, so concurrent adjustments never
    lose each other. Does not commit. Returns False when no such party
    exists (documents may name a walk-in counterparty that was never
    registered).
    """
    if not delta_cents or not party_name:
        return False

    result = db.session.execute(
        update(Party)
        .where(Party.business_id == business_id, Party.name == party_name)
        .values(balance_cents=Party.balance_cents + delta_cents)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def create_party(business_id: int, payload: dict, actor: Actor) -> Party:
    payload = dict(payload or {})
    party_id = payload.pop("id", None)

    patch = validate_payload(model=Party, payload=payload, policy=PARTY_POLICY, partial=False)
    enforce_rules_party(patch)

    existing = db.session.query(Party).filter_by(business_id=business_id, name=patch["name"]).first()
    if existing:
        raise ConflictError("A party with this name already exists", details={"name": patch["name"]})

    party = Party(
        business_id=business_id,
        id=require_record_id(party_id) if party_id is not None else new_record_id(),
        balance_cents=0,
        **patch,
    )

    try:
        db.session.add(party)
        append_audit_entry(business_id=business_id, record=AuditRecord(
            action="CREATE_PARTY",
            details=f"Added {party.type.lower()} {party.name}",
            user_id=actor.user_id,
            user_name=actor.user_name,
            entity_type="party",
            entity_id=party.id,
        ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A party with this name or id already exists", details={"name": patch["name"]})
    return party


def list_parties(business_id: int, *, party_type: str | None = None) -> list[Party]:
    query = db.session.query(Party).filter(Party.business_id == business_id)
    if party_type:
        query = query.filter(Party.type == party_type)
    return query.order_by(Party.name.asc()).all()


def get_party_by_name(business_id: int, name: str) -> Party | None:
    return db.session.query(Party).filter_by(business_id=business_id, name=name).first()
