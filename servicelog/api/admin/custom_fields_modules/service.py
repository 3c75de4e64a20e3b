from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from servicelog.api.errors import engine_errors_as_http
from servicelog.core.deps import actor_label
from servicelog.schemas.custom_fields import (
    ClientFieldCreate,
    CustomFieldCreate,
    CustomFieldPatch,
    ReorderRequest,
)
from servicelog.services.field_store import FieldDefinitionStore

from .common import field_row


def list_custom_fields_service(
    db: Session,
    client_id: str | None = None,
    include_inactive: bool = True,
    include_global: bool = True,
) -> dict[str, Any]:
    fields = FieldDefinitionStore(db).list_fields(
        client_id,
        include_global=include_global,
        include_inactive=include_inactive,
    )
    return {"rows": [field_row(item) for item in fields], "total": len(fields)}


def create_custom_field_service(payload: CustomFieldCreate, db: Session, admin: dict) -> dict[str, Any]:
    data = payload.model_dump()
    data["choices"] = [choice.model_dump() for choice in payload.choices]
    with engine_errors_as_http():
        definition = FieldDefinitionStore(db).create(data, actor=actor_label(admin))
    return field_row(definition)


def create_client_field_service(client_id: str, payload: ClientFieldCreate, db: Session, admin: dict) -> dict[str, Any]:
    data = payload.model_dump()
    data["choices"] = [choice.model_dump() for choice in payload.choices]
    data["client_id"] = client_id
    with engine_errors_as_http():
        definition = FieldDefinitionStore(db).create(data, actor=actor_label(admin))
    return field_row(definition)


def update_custom_field_service(field_id: str, payload: CustomFieldPatch, db: Session, admin: dict) -> dict[str, Any]:
    with engine_errors_as_http():
        definition = FieldDefinitionStore(db).update(
            field_id,
            payload.model_dump(exclude_unset=True),
            actor=actor_label(admin),
        )
    return field_row(definition)


def toggle_custom_field_service(field_id: str, db: Session, admin: dict) -> dict[str, Any]:
    with engine_errors_as_http():
        definition = FieldDefinitionStore(db).toggle_active(field_id, actor=actor_label(admin))
    return field_row(definition)


def delete_custom_field_service(field_id: str, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        FieldDefinitionStore(db).delete(field_id)
    return {"status": "deleted", "id": field_id}


def reorder_custom_fields_service(payload: ReorderRequest, db: Session, admin: dict) -> dict[str, Any]:
    with engine_errors_as_http():
        fields = FieldDefinitionStore(db).reorder(
            [(item.id, item.order) for item in payload.items],
            actor=actor_label(admin),
        )
    return {"rows": [field_row(item) for item in fields], "total": len(fields)}


def custom_field_stats_service(db: Session, client_id: str | None = None) -> dict[str, Any]:
    stats = FieldDefinitionStore(db).usage_stats(client_id)
    rows = [field_row(item["field"], usage_count=item["usage_count"]) for item in stats]
    return {
        "rows": rows,
        "total": len(rows),
        "total_values": sum(item["usage_count"] for item in stats),
    }
