from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from servicelog.schemas.forms import ServiceLogFormState
from servicelog.services.drafts import DraftReconciler, draft_key, get_draft_store

from .form_config import field_resolver, rendered_fields


def draft_reconciler(user: dict, db: Session | None = None) -> DraftReconciler:
    resolver = field_resolver(db) if db is not None else None
    return DraftReconciler(get_draft_store(), draft_key(user.get("sub")), resolver)


def get_draft_service(db: Session, user: dict) -> dict[str, Any]:
    result = draft_reconciler(user, db).restore()
    return {
        "draft": result.form.snapshot() if result.form is not None else None,
        "fields": rendered_fields(result.fields),
        "dropped_field_ids": result.dropped_field_ids,
        "notices": result.notices,
    }


def save_draft_service(payload: ServiceLogFormState, user: dict) -> dict[str, Any]:
    saved = draft_reconciler(user).save_snapshot(payload)
    return {"saved": saved}


def delete_draft_service(user: dict) -> dict[str, Any]:
    draft_reconciler(user).discard()
    return {"status": "deleted"}
