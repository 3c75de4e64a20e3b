from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from servicelog.core.config import settings
from servicelog.schemas.forms import PatientEntryState, ServiceLogFormState
from servicelog.services.field_types import FieldDefinition, FieldType, ensure_covers_field_types

APPOINTMENT_TYPES = ("new", "followup", "dna")

ERROR_REQUIRED = "required"
ERROR_INVALID_CHOICE = "invalid_choice"
ERROR_TOO_LONG = "too_long"
ERROR_INVALID = "invalid"


@dataclass(frozen=True)
class FieldError:
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass
class ValidationResult:
    form_errors: dict[str, FieldError] = field(default_factory=dict)
    entry_errors: dict[int, dict[str, FieldError]] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.form_errors and not self.entry_errors

    @property
    def error_count(self) -> int:
        return len(self.form_errors) + sum(len(errors) for errors in self.entry_errors.values())

    def add_entry_error(self, index: int, key: str, error: FieldError) -> None:
        self.entry_errors.setdefault(index, {})[key] = error

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        self.form_errors.update(other.form_errors)
        for index, errors in other.entry_errors.items():
            self.entry_errors.setdefault(index, {}).update(errors)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "error_count": self.error_count,
            "form_errors": {key: error.to_dict() for key, error in self.form_errors.items()},
            "entry_errors": {
                str(index): {key: error.to_dict() for key, error in errors.items()}
                for index, errors in sorted(self.entry_errors.items())
            },
        }


def _blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return not raw.strip()
    return False


# A checkbox always carries a value, so it is never empty.
_IS_EMPTY: dict[FieldType, Callable[[Any], bool]] = {
    FieldType.DROPDOWN: _blank,
    FieldType.TEXT: _blank,
    FieldType.NUMBER: _blank,
    FieldType.CHECKBOX: lambda raw: False,
}
ensure_covers_field_types(_IS_EMPTY, "emptiness checks")


def is_empty(definition: FieldDefinition, raw: Any) -> bool:
    return _IS_EMPTY[definition.type](raw)


def _custom_fields_of(entry: PatientEntryState | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(entry, PatientEntryState):
        return entry.custom_fields
    values = entry.get("customFields", entry.get("custom_fields"))
    return values if isinstance(values, Mapping) else {}


def _check_value(definition: FieldDefinition, raw: Any) -> FieldError | None:
    if definition.required and is_empty(definition, raw):
        return FieldError(ERROR_REQUIRED, f"{definition.label} is required")
    if definition.type is FieldType.DROPDOWN and not _blank(raw) and definition.find_choice(raw) is None:
        return FieldError(ERROR_INVALID_CHOICE, f"Please select a valid option for {definition.label}")
    if definition.type is FieldType.TEXT and raw is not None and len(str(raw)) > settings.TEXT_VALUE_MAX_LENGTH:
        return FieldError(
            ERROR_TOO_LONG,
            f"{definition.label} cannot exceed {settings.TEXT_VALUE_MAX_LENGTH} characters",
        )
    return None


def validate(
    entries: Iterable[PatientEntryState | Mapping[str, Any]],
    field_set: Iterable[FieldDefinition],
) -> ValidationResult:
    """Check every entry against the dynamic fields; collects all violations, never raises."""
    fields = list(field_set)
    result = ValidationResult()
    for index, entry in enumerate(entries):
        values = _custom_fields_of(entry)
        for definition in fields:
            raw = values.get(definition.key)
            error = _check_value(definition, raw)
            if error is not None:
                result.add_entry_error(index, definition.key, error)
    return result


def _validate_builtin(
    form: ServiceLogFormState,
    known_outcome_ids: set[str] | None,
) -> ValidationResult:
    result = ValidationResult()
    if _blank(form.client_id):
        result.form_errors["clientId"] = FieldError(ERROR_REQUIRED, "Please select a client/site")
    if _blank(form.activity_id):
        result.form_errors["activityId"] = FieldError(ERROR_REQUIRED, "Please select an activity")
    if form.service_date is None:
        result.form_errors["serviceDate"] = FieldError(ERROR_REQUIRED, "Please enter the service date")

    count = form.patient_count
    max_count = settings.MAX_PATIENT_COUNT
    if count is None or not (1 <= int(count) <= max_count):
        result.form_errors["patientCount"] = FieldError(
            ERROR_INVALID, f"Patient count must be between 1 and {max_count}"
        )
    elif len(form.entries) != int(count):
        result.form_errors["entries"] = FieldError(
            ERROR_INVALID, "Patient entries must match the total patient count"
        )

    for index, entry in enumerate(form.entries):
        if entry.appointment_type not in APPOINTMENT_TYPES:
            result.add_entry_error(
                index,
                "appointmentType",
                FieldError(ERROR_INVALID, "Appointment type must be one of: " + ", ".join(APPOINTMENT_TYPES)),
            )
        if _blank(entry.outcome_id):
            result.add_entry_error(index, "outcomeId", FieldError(ERROR_REQUIRED, "Please select an outcome"))
        elif known_outcome_ids is not None and str(entry.outcome_id) not in known_outcome_ids:
            result.add_entry_error(index, "outcomeId", FieldError(ERROR_INVALID, "Please select a valid outcome"))
    return result


def validate_form(
    form: ServiceLogFormState,
    field_set: Iterable[FieldDefinition],
    *,
    known_outcome_ids: set[str] | None = None,
) -> ValidationResult:
    return _validate_builtin(form, known_outcome_ids).merge(validate(form.entries, field_set))
