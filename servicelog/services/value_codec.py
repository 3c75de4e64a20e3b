from __future__ import annotations

import logging
import math
from typing import Any, Callable, Iterable, Mapping

from servicelog.core.config import settings
from servicelog.services.errors import SchemaMismatchError
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
    zero_value,
)

_LOG = logging.getLogger("servicelog.value_codec")

_TRUE_STRINGS = {"true", "1", "yes", "on", "y"}
_FALSE_STRINGS = {"false", "0", "no", "off", "n", ""}


def _is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return not raw.strip()
    return False


def _encode_choice(field: FieldDefinition, raw: Any) -> ChoiceValue:
    if _is_blank(raw):
        return ChoiceValue(NO_SELECTION)
    choice = field.find_choice(raw)
    if choice is None:
        raise SchemaMismatchError(
            f'Value "{raw}" is not a choice of field "{field.label}"',
            field_id=field.key,
        )
    return ChoiceValue(choice.id)


def _encode_text(field: FieldDefinition, raw: Any) -> TextValue:
    text = "" if raw is None else str(raw)
    if len(text) > settings.TEXT_VALUE_MAX_LENGTH:
        raise SchemaMismatchError(
            f'Field "{field.label}" cannot exceed {settings.TEXT_VALUE_MAX_LENGTH} characters',
            field_id=field.key,
        )
    return TextValue(text)


def coerce_number(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _encode_number(field: FieldDefinition, raw: Any) -> NumberValue:
    number = coerce_number(raw)
    if number is None:
        # Unparseable input is stored as 0, same as an explicit zero.
        if not _is_blank(raw):
            _LOG.info("non-numeric value for field %s encoded as 0", field.key)
        return NumberValue(0.0)
    return NumberValue(number)


def coerce_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    if isinstance(raw, (int, float)):
        return raw != 0
    text = str(raw).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return bool(text)


def _encode_checkbox(field: FieldDefinition, raw: Any) -> CheckboxValue:
    return CheckboxValue(coerce_bool(raw))


_ENCODERS: dict[FieldType, Callable[[FieldDefinition, Any], FieldValuePayload]] = {
    FieldType.DROPDOWN: _encode_choice,
    FieldType.TEXT: _encode_text,
    FieldType.NUMBER: _encode_number,
    FieldType.CHECKBOX: _encode_checkbox,
}

_PAYLOAD_TYPES: dict[FieldType, type] = {
    FieldType.DROPDOWN: ChoiceValue,
    FieldType.TEXT: TextValue,
    FieldType.NUMBER: NumberValue,
    FieldType.CHECKBOX: CheckboxValue,
}


def _number_to_raw(number: float) -> int | float:
    return int(number) if float(number).is_integer() else number


_DECODERS: dict[FieldType, Callable[[Any], Any]] = {
    FieldType.DROPDOWN: lambda payload: "" if payload.choice_id is NO_SELECTION else payload.choice_id,
    FieldType.TEXT: lambda payload: payload.text,
    FieldType.NUMBER: lambda payload: _number_to_raw(payload.number),
    FieldType.CHECKBOX: lambda payload: bool(payload.checked),
}

ensure_covers_field_types(_ENCODERS, "value encoders")
ensure_covers_field_types(_PAYLOAD_TYPES, "payload types")
ensure_covers_field_types(_DECODERS, "value decoders")


def encode(field: FieldDefinition, raw: Any) -> FieldValuePayload:
    return _ENCODERS[field.type](field, raw)


def encode_entry(
    field_set: Iterable[FieldDefinition],
    custom_fields: Mapping[str, Any] | None,
) -> list[tuple[FieldDefinition, FieldValuePayload]]:
    """Encode one patient entry; fields missing from the map get their type's zero value."""
    values = custom_fields or {}
    encoded: list[tuple[FieldDefinition, FieldValuePayload]] = []
    for field in field_set:
        if field.key in values:
            raw = values[field.key]
        elif field.id in values:
            raw = values[field.id]
        else:
            raw = zero_value(field.type)
        encoded.append((field, encode(field, raw)))
    return encoded


def decode_value(field: FieldDefinition, payload: FieldValuePayload) -> Any:
    expected = _PAYLOAD_TYPES[field.type]
    if not isinstance(payload, expected):
        raise SchemaMismatchError(
            f'Stored value for field "{field.label}" is {type(payload).__name__}, '
            f"but the field is declared as {field.type.value}",
            field_id=field.key,
        )
    return _DECODERS[field.type](payload)


def decode(values: Iterable[StoredFieldValue], fields: Iterable[FieldDefinition]) -> dict[str, Any]:
    by_key = {field.key: field for field in fields}
    decoded: dict[str, Any] = {}
    for value in values:
        field = by_key.get(str(value.field_id))
        if field is None:
            continue
        decoded[field.key] = decode_value(field, value.payload)
    return decoded


def decode_values_lenient(
    values: Iterable[StoredFieldValue],
    fields: Iterable[FieldDefinition],
) -> tuple[dict[str, Any], list[str]]:
    """Decode what matches; mismatching values are logged and treated as unset."""
    by_key = {field.key: field for field in fields}
    decoded: dict[str, Any] = {}
    mismatched: list[str] = []
    for value in values:
        field = by_key.get(str(value.field_id))
        if field is None:
            continue
        try:
            decoded[field.key] = decode_value(field, value.payload)
        except SchemaMismatchError as exc:
            _LOG.warning("schema mismatch on decode field=%s entry=%s: %s", field.key, value.patient_entry_id, exc.message)
            mismatched.append(field.key)
    return decoded, mismatched
