from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from servicelog.api.errors import engine_errors_as_http
from servicelog.models.activity import Activity
from servicelog.models.client import Client
from servicelog.models.outcome import Outcome
from servicelog.schemas.forms import BindRequest, ServiceLogFormState
from servicelog.services.field_resolver import FieldResolver
from servicelog.services.field_store import FieldDefinitionStore
from servicelog.services.field_types import FieldDefinition, zero_value
from servicelog.services.form_binder import bind_entry, render_field
from servicelog.services.validation_gate import APPOINTMENT_TYPES, validate_form


def field_resolver(db: Session) -> FieldResolver:
    return FieldResolver(FieldDefinitionStore(db))


def _taxonomy_rows(db: Session, model) -> list[dict[str, Any]]:
    rows = (
        db.query(model)
        .filter(model.is_active.is_(True))
        .order_by(model.sort_order.asc(), model.name.asc())
        .all()
    )
    return [{"id": str(row.id), "name": row.name} for row in rows]


def active_outcome_ids(db: Session) -> set[str]:
    return {str(row_id) for (row_id,) in db.query(Outcome.id).filter(Outcome.is_active.is_(True)).all()}


def rendered_fields(fields: list[FieldDefinition]) -> list[dict[str, Any]]:
    return [render_field(definition, zero_value(definition.type)).to_dict() for definition in fields]


def get_form_config_service(db: Session) -> dict[str, Any]:
    resolution = field_resolver(db).resolve_or_degrade(None)
    return {
        "clients": _taxonomy_rows(db, Client),
        "activities": _taxonomy_rows(db, Activity),
        "outcomes": _taxonomy_rows(db, Outcome),
        "appointment_types": list(APPOINTMENT_TYPES),
        "fields": rendered_fields(resolution.fields),
        "notice": resolution.notice,
    }


def get_client_form_config_service(client_id: str, db: Session) -> dict[str, Any]:
    resolution = field_resolver(db).resolve_or_degrade(client_id)
    return {
        "client_id": client_id,
        "fields": rendered_fields(resolution.fields),
        "notice": resolution.notice,
    }


def bind_entry_service(payload: BindRequest, db: Session) -> dict[str, Any]:
    resolution = field_resolver(db).resolve_or_degrade(payload.client_id)
    return bind_entry(payload.entry, payload.client_id, resolution.fields, resolution.notice).to_dict()


def validate_form_service(payload: ServiceLogFormState, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        fields = field_resolver(db).resolve(payload.client_id)
    return validate_form(payload, fields, known_outcome_ids=active_outcome_ids(db)).to_dict()
