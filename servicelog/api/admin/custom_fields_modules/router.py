from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from servicelog.core.deps import require_role
from servicelog.db.session import get_db
from servicelog.schemas.custom_fields import (
    ChoiceIn,
    ChoicePatch,
    ClientFieldCreate,
    CustomFieldCreate,
    CustomFieldPatch,
    ReorderRequest,
)

from .choices import (
    add_choice_service,
    delete_choice_service,
    list_choices_service,
    reorder_choices_service,
    update_choice_service,
)
from .service import (
    create_client_field_service,
    create_custom_field_service,
    custom_field_stats_service,
    delete_custom_field_service,
    list_custom_fields_service,
    reorder_custom_fields_service,
    toggle_custom_field_service,
    update_custom_field_service,
)

router = APIRouter()
client_fields_router = APIRouter()


@router.get("")
def list_custom_fields(
    client_id: Optional[str] = Query(default=None),
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
    admin=Depends(require_role("ADMIN")),
):
    return list_custom_fields_service(db, client_id=client_id, include_inactive=include_inactive)


@router.post("", status_code=201)
def create_custom_field(payload: CustomFieldCreate, db: Session = Depends(get_db), admin=Depends(require_role("ADMIN"))):
    return create_custom_field_service(payload, db, admin)


@router.get("/stats")
def custom_field_stats(
    client_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    admin=Depends(require_role("ADMIN")),
):
    return custom_field_stats_service(db, client_id=client_id)


@router.put("/reorder")
def reorder_custom_fields(payload: ReorderRequest, db: Session = Depends(get_db), admin=Depends(require_role("ADMIN"))):
    return reorder_custom_fields_service(payload, db, admin)


@router.patch("/{field_id}")
def update_custom_field(
    field_id: str,
    payload: CustomFieldPatch,
    db: Session = Depends(get_db),
    admin=Depends(require_role("ADMIN")),
):
    return update_custom_field_service(field_id, payload, db, admin)


@router.delete("/{field_id}")
def delete_custom_field(field_id: str, db: Session = Depends(get_db), admin=Depends(require_role("ADMIN"))):
    return delete_custom_field_service(field_id, db)


@router.post("/{field_id}/toggle")
def toggle_custom_field(field_id: str, db: Session = Depends(get_db), admin=Depends(require_role("ADMIN"))):
    return toggle_custom_field_service(field_id, db, admin)


@router.get("/{field_id}/choices")
def list_choices(field_id: str, db: Session = Depends(get_db), admin=Depends(require_role("ADMIN"))):
    return list_choices_service(field_id, db)


@router.post("/{field_id}/choices", status_code=201)
def add_choice(field_id: str, payload: ChoiceIn, db: Session = Depends(get_db), admin=Depends(require_role("ADMIN"))):
    return add_choice_service(field_id, payload, db)


@router.put("/{field_id}/choices/reorder")
def reorder_choices(
    field_id: str,
    payload: ReorderRequest,
    db: Session = Depends(get_db),
    admin=Depends(require_role("ADMIN")),
):
    return reorder_choices_service(field_id, payload, db)


@router.patch("/{field_id}/choices/{choice_id}")
def update_choice(
    field_id: str,
    choice_id: str,
    payload: ChoicePatch,
    db: Session = Depends(get_db),
    admin=Depends(require_role("ADMIN")),
):
    return update_choice_service(field_id, choice_id, payload, db)


@router.delete("/{field_id}/choices/{choice_id}")
def delete_choice(field_id: str, choice_id: str, db: Session = Depends(get_db), admin=Depends(require_role("ADMIN"))):
    return delete_choice_service(field_id, choice_id, db)


@client_fields_router.get("/{client_id}/fields")
def list_client_fields(
    client_id: str,
    include_global: bool = Query(default=False),
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
    admin=Depends(require_role("ADMIN")),
):
    return list_custom_fields_service(
        db,
        client_id=client_id,
        include_inactive=include_inactive,
        include_global=include_global,
    )


@client_fields_router.post("/{client_id}/fields", status_code=201)
def create_client_field(
    client_id: str,
    payload: ClientFieldCreate,
    db: Session = Depends(get_db),
    admin=Depends(require_role("ADMIN")),
):
    return create_client_field_service(client_id, payload, db, admin)
