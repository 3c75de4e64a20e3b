from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from servicelog.models.activity import Activity
from servicelog.models.client import Client
from servicelog.models.custom_field_value import CustomFieldValue
from servicelog.models.outcome import Outcome
from servicelog.models.patient_entry import PatientEntry
from servicelog.models.service_log import ServiceLog
from servicelog.schemas.forms import PatientEntryState, ServiceLogFormState
from servicelog.services.errors import (
    FieldDefinitionNotFound,
    PersistenceFailure,
    SchemaMismatchError,
    ValidationFailure,
)
from servicelog.services.field_resolver import FieldResolver
from servicelog.services.field_store import FieldDefinitionStore, as_uuid_or_none
from servicelog.services.field_types import (
    NO_SELECTION,
    CheckboxValue,
    ChoiceValue,
    FieldDefinition,
    FieldType,
    FieldValuePayload,
    NumberValue,
    StoredFieldValue,
    TextValue,
    ensure_covers_field_types,
)
from servicelog.services.validation_gate import ERROR_INVALID, FieldError, validate, validate_form
from servicelog.services.value_codec import decode_values_lenient, encode_entry

_LOG = logging.getLogger("servicelog.service_logs")


def _empty_columns(field_type: FieldType) -> dict[str, Any]:
    return {
        "value_type": field_type.value,
        "choice_id": None,
        "text_value": None,
        "number_value": None,
        "checkbox_value": None,
    }


def _choice_columns(payload: ChoiceValue) -> dict[str, Any]:
    columns = _empty_columns(FieldType.DROPDOWN)
    columns["choice_id"] = None if payload.choice_id is NO_SELECTION else as_uuid_or_none(payload.choice_id)
    return columns


def _text_columns(payload: TextValue) -> dict[str, Any]:
    columns = _empty_columns(FieldType.TEXT)
    columns["text_value"] = payload.text
    return columns


def _number_columns(payload: NumberValue) -> dict[str, Any]:
    columns = _empty_columns(FieldType.NUMBER)
    columns["number_value"] = float(payload.number)
    return columns


def _checkbox_columns(payload: CheckboxValue) -> dict[str, Any]:
    columns = _empty_columns(FieldType.CHECKBOX)
    columns["checkbox_value"] = bool(payload.checked)
    return columns


_TO_COLUMNS: dict[FieldType, Callable[[Any], dict[str, Any]]] = {
    FieldType.DROPDOWN: _choice_columns,
    FieldType.TEXT: _text_columns,
    FieldType.NUMBER: _number_columns,
    FieldType.CHECKBOX: _checkbox_columns,
}

_FROM_ROW: dict[FieldType, Callable[[CustomFieldValue], FieldValuePayload]] = {
    FieldType.DROPDOWN: lambda row: ChoiceValue(str(row.choice_id) if row.choice_id else NO_SELECTION),
    FieldType.TEXT: lambda row: TextValue(row.text_value or ""),
    FieldType.NUMBER: lambda row: NumberValue(float(row.number_value or 0)),
    FieldType.CHECKBOX: lambda row: CheckboxValue(bool(row.checkbox_value)),
}

ensure_covers_field_types(_TO_COLUMNS, "value columns")
ensure_covers_field_types(_FROM_ROW, "value rows")


def payload_to_columns(payload: FieldValuePayload) -> dict[str, Any]:
    return _TO_COLUMNS[payload.field_type](payload)


def payload_from_row(row: CustomFieldValue) -> FieldValuePayload:
    try:
        field_type = FieldType.parse(row.value_type)
    except ValueError:
        raise SchemaMismatchError(f"Unknown stored value type {row.value_type!r}", field_id=str(row.field_id)) from None
    return _FROM_ROW[field_type](row)


def value_row_dict(row: CustomFieldValue) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "patient_entry_id": str(row.patient_entry_id),
        "field_id": str(row.field_id),
        "value_type": row.value_type,
        **payload_from_row(row).to_dict(),
    }


def _resolver(db: Session) -> FieldResolver:
    return FieldResolver(FieldDefinitionStore(db))


def _active_ids(db: Session, model) -> set[str]:
    return {str(row_id) for (row_id,) in db.query(model.id).filter(model.is_active.is_(True)).all()}


def _check_taxonomy(db: Session, form: ServiceLogFormState, result) -> None:
    client_uuid = as_uuid_or_none(form.client_id)
    if form.client_id and (client_uuid is None or str(client_uuid) not in _active_ids(db, Client)):
        result.form_errors["clientId"] = FieldError(ERROR_INVALID, "Please select a valid client/site")
    activity_uuid = as_uuid_or_none(form.activity_id)
    if form.activity_id and (activity_uuid is None or str(activity_uuid) not in _active_ids(db, Activity)):
        result.form_errors["activityId"] = FieldError(ERROR_INVALID, "Please select a valid activity")


def _new_value_rows(entry_id: uuid.UUID, fields: list[FieldDefinition], custom_fields: Mapping[str, Any]) -> list[CustomFieldValue]:
    return [
        CustomFieldValue(patient_entry_id=entry_id, field_id=uuid.UUID(definition.key), **payload_to_columns(payload))
        for definition, payload in encode_entry(fields, custom_fields)
    ]


def submit_service_log(db: Session, form: ServiceLogFormState, user_id: Any) -> dict[str, Any]:
    """Validate and store a service log with all entries and their field values, atomically."""
    fields = _resolver(db).resolve(form.client_id)
    result = validate_form(form, fields, known_outcome_ids=_active_ids(db, Outcome))
    _check_taxonomy(db, form, result)
    if not result.valid:
        raise ValidationFailure(result)

    try:
        log = ServiceLog(
            user_id=str(user_id),
            client_id=uuid.UUID(str(form.client_id)),
            activity_id=uuid.UUID(str(form.activity_id)),
            service_date=form.service_date,
            patient_count=int(form.patient_count),
        )
        db.add(log)
        db.flush()
        entry_ids: list[str] = []
        value_count = 0
        for entry in form.entries:
            row = PatientEntry(
                service_log_id=log.id,
                appointment_type=entry.appointment_type,
                outcome_id=as_uuid_or_none(entry.outcome_id),
            )
            db.add(row)
            db.flush()
            values = _new_value_rows(row.id, fields, entry.custom_fields)
            db.add_all(values)
            value_count += len(values)
            entry_ids.append(str(row.id))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        _LOG.error("service log submission failed user=%s client=%s", user_id, form.client_id, exc_info=True)
        raise PersistenceFailure("Could not save the service log; nothing was stored") from exc

    _LOG.info("service log stored id=%s entries=%d values=%d", log.id, len(entry_ids), value_count)
    return {
        "id": str(log.id),
        "client_id": str(log.client_id),
        "activity_id": str(log.activity_id),
        "service_date": log.service_date.isoformat(),
        "patient_count": log.patient_count,
        "entry_ids": entry_ids,
        "value_count": value_count,
    }


def _entry_or_404(db: Session, entry_id: Any) -> PatientEntry:
    entry_uuid = as_uuid_or_none(entry_id)
    entry = db.get(PatientEntry, entry_uuid) if entry_uuid else None
    if entry is None:
        raise FieldDefinitionNotFound("Patient entry not found", entry_id=str(entry_id))
    return entry


def _client_of(db: Session, entry: PatientEntry) -> uuid.UUID | None:
    log = db.get(ServiceLog, entry.service_log_id)
    return log.client_id if log else None


def save_entry_values(db: Session, entry_id: Any, custom_fields: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Replace the entry's values for the fields that currently apply; either all are stored or none."""
    entry = _entry_or_404(db, entry_id)
    client_id = _client_of(db, entry)
    fields = _resolver(db).resolve(str(client_id) if client_id else None)
    result = validate([PatientEntryState(custom_fields=dict(custom_fields))], fields)
    if not result.valid:
        raise ValidationFailure(result)

    try:
        field_uuids = [uuid.UUID(definition.key) for definition in fields]
        if field_uuids:
            (
                db.query(CustomFieldValue)
                .filter(
                    CustomFieldValue.patient_entry_id == entry.id,
                    CustomFieldValue.field_id.in_(field_uuids),
                )
                .delete(synchronize_session=False)
            )
        db.add_all(_new_value_rows(entry.id, fields, custom_fields))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        _LOG.error("saving field values failed entry=%s", entry.id, exc_info=True)
        raise PersistenceFailure("Could not save field values; nothing was stored") from exc

    rows = db.query(CustomFieldValue).filter(CustomFieldValue.patient_entry_id == entry.id).all()
    return [value_row_dict(row) for row in rows]


def stored_values(db: Session, entry_id: Any) -> list[StoredFieldValue]:
    entry = _entry_or_404(db, entry_id)
    rows = db.query(CustomFieldValue).filter(CustomFieldValue.patient_entry_id == entry.id).all()
    values: list[StoredFieldValue] = []
    for row in rows:
        try:
            payload = payload_from_row(row)
        except SchemaMismatchError as exc:
            _LOG.warning("skipping unreadable value id=%s: %s", row.id, exc.message)
            continue
        values.append(
            StoredFieldValue(field_id=str(row.field_id), payload=payload, patient_entry_id=str(row.patient_entry_id), id=str(row.id))
        )
    return values


def decode_entry_values(db: Session, entry_id: Any) -> dict[str, Any]:
    values = stored_values(db, entry_id)
    definitions = FieldDefinitionStore(db).definitions_for(value.field_id for value in values)
    decoded, _ = decode_values_lenient(values, definitions.values())
    return decoded


def delete_patient_entry(db: Session, entry_id: Any) -> None:
    entry = _entry_or_404(db, entry_id)
    try:
        db.query(CustomFieldValue).filter(CustomFieldValue.patient_entry_id == entry.id).delete(synchronize_session=False)
        db.delete(entry)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure("Could not delete the patient entry") from exc
