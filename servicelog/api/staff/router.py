from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from servicelog.core.deps import require_role
from servicelog.db.session import get_db
from servicelog.schemas.forms import BindRequest, EntryValuesIn, ServiceLogFormState

from .drafts import delete_draft_service, get_draft_service, save_draft_service
from .form_config import (
    bind_entry_service,
    get_client_form_config_service,
    get_form_config_service,
    validate_form_service,
)
from .submissions import (
    delete_patient_entry_service,
    get_entry_values_service,
    save_entry_values_service,
    submit_service_log_service,
)

router = APIRouter()

STAFF_ROLES = ("STAFF", "ADMIN")


@router.get("/form-config")
def get_form_config(db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return get_form_config_service(db)


@router.get("/form-config/{client_id}")
def get_client_form_config(client_id: str, db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return get_client_form_config_service(client_id, db)


@router.post("/forms/bind")
def bind_entry(payload: BindRequest, db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return bind_entry_service(payload, db)


@router.post("/forms/validate")
def validate_form(payload: ServiceLogFormState, db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return validate_form_service(payload, db)


@router.get("/drafts")
def get_draft(db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return get_draft_service(db, user)


@router.put("/drafts")
def save_draft(payload: ServiceLogFormState, user=Depends(require_role(*STAFF_ROLES))):
    return save_draft_service(payload, user)


@router.delete("/drafts")
def delete_draft(user=Depends(require_role(*STAFF_ROLES))):
    return delete_draft_service(user)


@router.post("/service-logs", status_code=201)
def submit_service_log(payload: ServiceLogFormState, db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return submit_service_log_service(payload, db, user)


@router.get("/patient-entries/{entry_id}/values")
def get_entry_values(entry_id: str, db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return get_entry_values_service(entry_id, db)


@router.put("/patient-entries/{entry_id}/values")
def save_entry_values(
    entry_id: str,
    payload: EntryValuesIn,
    db: Session = Depends(get_db),
    user=Depends(require_role(*STAFF_ROLES)),
):
    return save_entry_values_service(entry_id, payload, db)


@router.delete("/patient-entries/{entry_id}")
def delete_patient_entry(entry_id: str, db: Session = Depends(get_db), user=Depends(require_role(*STAFF_ROLES))):
    return delete_patient_entry_service(entry_id, db)
