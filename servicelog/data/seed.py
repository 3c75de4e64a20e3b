from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from servicelog.db.session import SessionLocal
from servicelog.models.activity import Activity
from servicelog.models.client import Client
from servicelog.models.custom_field import CustomField
from servicelog.models.field_choice import FieldChoice
from servicelog.models.outcome import Outcome
from servicelog.services.field_types import FieldType

_LOG = logging.getLogger("servicelog.seed")

SEED_ACTOR = "seed"

CLIENTS = [
    "Main Hospital",
    "Community Clinic",
    "Outpatient Center",
    "Emergency Department",
    "Pediatric Ward",
    "Mental Health Unit",
]

ACTIVITIES = [
    "General Consultation",
    "Physical Therapy",
    "Diagnostic Imaging",
    "Laboratory Tests",
    "Preventive Care",
    "Emergency Treatment",
    "Specialist Referral",
    "Mental Health Counseling",
    "Chronic Care Management",
    "Rehabilitation Services",
]

OUTCOMES = [
    "Treatment Completed Successfully",
    "Referred to Specialist",
    "Follow-up Required",
    "Emergency Intervention",
    "Discharged to Home Care",
    "Admitted for Further Treatment",
    "Treatment Declined by Patient",
    "No Show - Appointment Missed",
    "Medication Prescribed",
    "Condition Stable",
    "Condition Improved",
    "Condition Requires Monitoring",
]

# (label, type, order, required, client name or None for global, choices)
CUSTOM_FIELDS = [
    ("Notes", FieldType.TEXT, 1, False, None, []),
    ("Priority", FieldType.DROPDOWN, 2, True, "Main Hospital", ["High", "Medium", "Low"]),
]


def _ensure_named(db: Session, model, names: list[str]) -> dict[str, object]:
    out = {}
    for index, name in enumerate(names, start=1):
        row = db.query(model).filter(model.name == name).first()
        if row is None:
            row = model(name=name, is_active=True, sort_order=index * 10)
            db.add(row)
        out[name] = row
    db.flush()
    return out


def _ensure_custom_fields(db: Session, clients: dict[str, Client]) -> int:
    created = 0
    for label, field_type, order, required, client_name, choices in CUSTOM_FIELDS:
        client_id = clients[client_name].id if client_name else None
        query = db.query(CustomField).filter(CustomField.label == label)
        query = query.filter(CustomField.client_id.is_(None)) if client_id is None else query.filter(CustomField.client_id == client_id)
        if query.first() is not None:
            continue
        row = CustomField(
            label=label,
            field_type=field_type.value,
            sort_order=order,
            required=required,
            is_active=True,
            client_id=client_id,
            responsible=SEED_ACTOR,
        )
        db.add(row)
        db.flush()
        for choice_order, text in enumerate(choices, start=1):
            db.add(FieldChoice(field_id=row.id, choice_text=text, choice_order=choice_order))
        created += 1
    return created


def seed_reference_data(db: Session) -> dict[str, int]:
    clients = _ensure_named(db, Client, CLIENTS)
    _ensure_named(db, Activity, ACTIVITIES)
    _ensure_named(db, Outcome, OUTCOMES)
    created_fields = _ensure_custom_fields(db, clients)
    db.commit()
    summary = {
        "clients": db.query(Client).count(),
        "activities": db.query(Activity).count(),
        "outcomes": db.query(Outcome).count(),
        "custom_fields": db.query(CustomField).count(),
        "custom_fields_created": created_fields,
    }
    _LOG.info("reference data seeded: %s", summary)
    return summary


def main() -> dict[str, int]:
    db = SessionLocal()
    try:
        summary = seed_reference_data(db)
        print("seed summary:", summary)
        return summary
    finally:
        db.close()


if __name__ == "__main__":
    main()
