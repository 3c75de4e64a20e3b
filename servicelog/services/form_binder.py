from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping

from servicelog.schemas.forms import PatientEntryState, ServiceLogFormState
from servicelog.services.errors import SchemaMismatchError
from servicelog.services.field_resolver import RESOLUTION_NOTICE
from servicelog.services.field_types import FieldDefinition, FieldType, ensure_covers_field_types, zero_value

_LOG = logging.getLogger("servicelog.form_binder")

ResolveFn = Callable[[Any], "list[FieldDefinition] | Awaitable[list[FieldDefinition]]"]


class BinderState(str, Enum):
    UNBOUND = "unbound"
    BOUND = "bound"


_CONTROLS: dict[FieldType, str] = {
    FieldType.DROPDOWN: "select",
    FieldType.TEXT: "text",
    FieldType.NUMBER: "number",
    FieldType.CHECKBOX: "checkbox",
}
ensure_covers_field_types(_CONTROLS, "form controls")


@dataclass
class RenderableField:
    field_id: str
    label: str
    field_type: FieldType
    control: str
    required: bool
    order: int
    value: Any
    options: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "field_id": self.field_id,
            "label": self.label,
            "type": self.field_type.value,
            "control": self.control,
            "required": self.required,
            "order": self.order,
            "options": list(self.options),
            "value": self.value,
        }


@dataclass
class BoundFieldSet:
    client_id: Any
    fields: list[RenderableField] = field(default_factory=list)
    discarded_field_ids: list[str] = field(default_factory=list)
    notice: str | None = None

    def values(self) -> dict[str, Any]:
        return {item.field_id: item.value for item in self.fields}

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "fields": [item.to_dict() for item in self.fields],
            "values": self.values(),
            "discarded_field_ids": list(self.discarded_field_ids),
            "notice": self.notice,
        }


def render_field(definition: FieldDefinition, value: Any) -> RenderableField:
    options = []
    if definition.type is FieldType.DROPDOWN:
        options = [{"id": choice.id, "text": choice.text} for choice in definition.ordered_choices()]
    return RenderableField(
        field_id=definition.key,
        label=definition.label,
        field_type=definition.type,
        control=_CONTROLS[definition.type],
        required=definition.required,
        order=definition.order,
        value=value,
        options=options,
    )


def reconcile_entry(
    custom_fields: Mapping[str, Any] | None,
    field_set: Iterable[FieldDefinition],
) -> tuple[dict[str, Any], list[str]]:
    """Carry values of fields that still apply, zero-fill new ones, report the dropped ids."""
    current = {str(key): value for key, value in (custom_fields or {}).items()}
    values: dict[str, Any] = {}
    for definition in field_set:
        if definition.key in current:
            values[definition.key] = current[definition.key]
        else:
            values[definition.key] = zero_value(definition.type)
    discarded = [key for key in current if key not in values]
    return values, discarded


def bind_entry(
    entry: PatientEntryState,
    client_id: Any,
    field_set: list[FieldDefinition],
    notice: str | None = None,
) -> BoundFieldSet:
    values, discarded = reconcile_entry(entry.custom_fields, field_set)
    return BoundFieldSet(
        client_id=client_id,
        fields=[render_field(definition, values[definition.key]) for definition in field_set],
        discarded_field_ids=discarded,
        notice=notice,
    )


class FormBinder:
    """Owns one in-progress service-log form and keeps its custom fields bound to the selected client.

    Client changes are resolved asynchronously. Until the resolution arrives the
    previous binding stays in place, and when several selections overlap only the
    most recent one is applied.
    Clearing the client leaves the form unbound with only the global fields.
    """

    def __init__(self, resolve: ResolveFn, form: ServiceLogFormState | None = None):
        self._resolve = resolve
        self.form = form or ServiceLogFormState()
        self.state = BinderState.UNBOUND
        self.field_set: list[FieldDefinition] = []
        self.bound_client_id: Any = None
        self.requested_client_id: Any = None
        self.notice: str | None = None
        self.discarded_field_ids: list[str] = []
        self.dirty = False
        self._request_seq = 0
        if self.form.client_id is None and not self.form.entries:
            self.resize_entries(self.form.patient_count or 1)
            self.dirty = False

    @property
    def pending(self) -> bool:
        return self.requested_client_id != self.bound_client_id

    async def _fetch(self, client_id: Any) -> tuple[list[FieldDefinition], str | None]:
        try:
            result = self._resolve(client_id)
            if inspect.isawaitable(result):
                result = await result
            return list(result or []), None
        except Exception:
            _LOG.warning("custom field resolution failed for client=%s", client_id, exc_info=True)
            return [], RESOLUTION_NOTICE

    async def select_client(self, client_id: Any) -> bool:
        """Switch the form to ``client_id``; returns False when a newer selection superseded this one."""
        self._request_seq += 1
        token = self._request_seq
        self.requested_client_id = client_id

        fields, notice = await self._fetch(client_id)
        if token != self._request_seq:
            _LOG.debug("discarding stale field resolution for client=%s", client_id)
            return False
        self._apply(client_id, fields, notice)
        return True

    def _apply(self, client_id: Any, fields: list[FieldDefinition], notice: str | None) -> None:
        if client_id == "":
            client_id = None
        discarded: set[str] = set()
        # A degraded resolution says nothing about which fields apply, so values stay.
        entries = self.form.entries if notice is None else []
        for entry in entries:
            values, dropped = reconcile_entry(entry.custom_fields, fields)
            entry.custom_fields = values
            discarded.update(dropped)
        self.field_set = list(fields)
        self.bound_client_id = client_id
        self.requested_client_id = client_id
        self.form.client_id = client_id
        self.state = BinderState.BOUND if client_id is not None else BinderState.UNBOUND
        self.notice = notice
        self.discarded_field_ids = sorted(discarded)
        self.dirty = True
        if discarded:
            _LOG.info("dropped values of %d fields no longer applicable to client=%s", len(discarded), client_id)

    def adopt(self, form: ServiceLogFormState, fields: list[FieldDefinition], notice: str | None = None) -> None:
        """Install a restored form together with the field set it was reconciled against."""
        self.form = form
        self._request_seq += 1
        self._apply(form.client_id, fields, notice)
        self.dirty = False

    def resize_entries(self, patient_count: int) -> None:
        count = max(int(patient_count or 0), 0)
        entries = list(self.form.entries[:count])
        while len(entries) < count:
            values, _ = reconcile_entry({}, self.field_set)
            entries.append(PatientEntryState(custom_fields=values))
        self.form.entries = entries
        self.form.patient_count = count
        self.dirty = True

    def set_value(self, entry_index: int, field_id: Any, raw: Any) -> None:
        key = str(field_id)
        if key not in {definition.key for definition in self.field_set}:
            raise SchemaMismatchError(f"Field {key} does not apply to the selected client", field_id=key)
        self.form.entries[entry_index].custom_fields[key] = raw
        self.dirty = True

    def update_form(self, **changes: Any) -> None:
        for name, value in changes.items():
            if name in ("client_id", "entries"):
                raise ValueError(f"{name} is managed by the binder")
            setattr(self.form, name, value)
        if "patient_count" in changes:
            self.resize_entries(changes["patient_count"])
        self.dirty = True

    def bound_entries(self) -> list[BoundFieldSet]:
        return [
            bind_entry(entry, self.bound_client_id, self.field_set, self.notice)
            for entry in self.form.entries
        ]

    def mark_clean(self) -> None:
        self.dirty = False
