from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from servicelog.api.errors import engine_errors_as_http
from servicelog.schemas.custom_fields import ChoiceIn, ChoicePatch, ReorderRequest
from servicelog.services.field_store import FieldDefinitionStore

from .common import choice_row


def list_choices_service(field_id: str, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        choices = FieldDefinitionStore(db).list_choices(field_id)
    return {"field_id": field_id, "rows": [choice_row(item) for item in choices], "total": len(choices)}


def add_choice_service(field_id: str, payload: ChoiceIn, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        choice = FieldDefinitionStore(db).add_choice(field_id, payload.text, payload.order)
    return choice_row(choice)


def update_choice_service(field_id: str, choice_id: str, payload: ChoicePatch, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        choice = FieldDefinitionStore(db).update_choice(field_id, choice_id, text=payload.text, order=payload.order)
    return choice_row(choice)


def delete_choice_service(field_id: str, choice_id: str, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        FieldDefinitionStore(db).delete_choice(field_id, choice_id)
    return {"status": "deleted", "id": choice_id}


def reorder_choices_service(field_id: str, payload: ReorderRequest, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        choices = FieldDefinitionStore(db).reorder_choices(field_id, [(item.id, item.order) for item in payload.items])
    return {"field_id": field_id, "rows": [choice_row(item) for item in choices], "total": len(choices)}
