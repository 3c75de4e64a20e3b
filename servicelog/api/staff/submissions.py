from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from servicelog.api.errors import engine_errors_as_http
from servicelog.schemas.forms import EntryValuesIn, ServiceLogFormState
from servicelog.services.service_logs import (
    decode_entry_values,
    delete_patient_entry,
    save_entry_values,
    submit_service_log,
)

from .drafts import draft_reconciler


def submit_service_log_service(payload: ServiceLogFormState, db: Session, user: dict) -> dict[str, Any]:
    with engine_errors_as_http():
        result = submit_service_log(db, payload, user.get("sub"))
    draft_reconciler(user).discard()
    return result


def get_entry_values_service(entry_id: str, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        values = decode_entry_values(db, entry_id)
    return {"entry_id": entry_id, "customFields": values}


def save_entry_values_service(entry_id: str, payload: EntryValuesIn, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        rows = save_entry_values(db, entry_id, payload.custom_fields)
    return {"entry_id": entry_id, "rows": rows, "total": len(rows)}


def delete_patient_entry_service(entry_id: str, db: Session) -> dict[str, Any]:
    with engine_errors_as_http():
        delete_patient_entry(db, entry_id)
    return {"status": "deleted", "id": entry_id}
