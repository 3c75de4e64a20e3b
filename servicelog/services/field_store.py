from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from servicelog.models.client import Client
from servicelog.models.custom_field import CustomField
from servicelog.models.custom_field_value import CustomFieldValue
from servicelog.models.field_choice import FieldChoice
from servicelog.services.errors import (
    FieldDefinitionConflict,
    FieldDefinitionNotFound,
    FieldInUse,
    FieldTypeLocked,
)
from servicelog.services.field_types import ChoiceDefinition, FieldDefinition, FieldType

_LOG = logging.getLogger("servicelog.field_store")

LABEL_MIN_LENGTH = 2
LABEL_MAX_LENGTH = 100
CHOICE_TEXT_MAX_LENGTH = 100


def as_uuid_or_none(value: Any) -> uuid.UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (TypeError, ValueError):
        return None


def _clean_label(raw: Any) -> str:
    label = str(raw or "").strip()
    if not (LABEL_MIN_LENGTH <= len(label) <= LABEL_MAX_LENGTH):
        raise FieldDefinitionConflict(
            f"Field label must be between {LABEL_MIN_LENGTH} and {LABEL_MAX_LENGTH} characters"
        )
    return label


def _clean_choice_text(raw: Any) -> str:
    text = str(raw or "").strip()
    if not text or len(text) > CHOICE_TEXT_MAX_LENGTH:
        raise FieldDefinitionConflict(f"Choice text must be between 1 and {CHOICE_TEXT_MAX_LENGTH} characters")
    return text


def _parse_type(raw: Any) -> FieldType:
    try:
        return FieldType.parse(raw)
    except ValueError as exc:
        raise FieldDefinitionConflict(str(exc)) from None


def to_choice_definition(row: FieldChoice) -> ChoiceDefinition:
    return ChoiceDefinition(id=str(row.id), text=row.choice_text, order=int(row.choice_order or 0))


def to_field_definition(row: CustomField, choices: Iterable[FieldChoice] = ()) -> FieldDefinition:
    field_type = FieldType.parse(row.field_type)
    return FieldDefinition(
        id=str(row.id),
        label=row.label,
        type=field_type,
        order=int(row.sort_order or 0),
        active=bool(row.is_active),
        client_id=str(row.client_id) if row.client_id else None,
        required=bool(row.required),
        choices=tuple(to_choice_definition(c) for c in choices) if field_type is FieldType.DROPDOWN else (),
        created_at=row.created_at,
    )


class FieldDefinitionStore:
    """CRUD over custom field definitions and their choices."""

    def __init__(self, db: Session):
        self.db = db

    # reads

    def _attach_choices(self, rows: list[CustomField]) -> list[FieldDefinition]:
        ids = [row.id for row in rows]
        by_field: dict[uuid.UUID, list[FieldChoice]] = {field_id: [] for field_id in ids}
        if ids:
            choices = (
                self.db.query(FieldChoice)
                .filter(FieldChoice.field_id.in_(ids))
                .order_by(FieldChoice.choice_order.asc(), FieldChoice.choice_text.asc())
                .all()
            )
            for choice in choices:
                by_field.setdefault(choice.field_id, []).append(choice)
        return [to_field_definition(row, by_field.get(row.id, [])) for row in rows]

    def _ordered(self, query):
        return query.order_by(CustomField.sort_order.asc(), CustomField.created_at.asc())

    def list_active(self, client_id: Any = None) -> list[FieldDefinition]:
        client_uuid = as_uuid_or_none(client_id)
        query = self.db.query(CustomField).filter(CustomField.is_active.is_(True))
        if client_uuid is None:
            query = query.filter(CustomField.client_id.is_(None))
        else:
            query = query.filter((CustomField.client_id.is_(None)) | (CustomField.client_id == client_uuid))
        return self._attach_choices(self._ordered(query).all())

    def list_fields(
        self,
        client_id: Any = None,
        *,
        include_global: bool = True,
        include_inactive: bool = True,
    ) -> list[FieldDefinition]:
        query = self.db.query(CustomField)
        client_uuid = as_uuid_or_none(client_id)
        if client_uuid is not None:
            if include_global:
                query = query.filter((CustomField.client_id.is_(None)) | (CustomField.client_id == client_uuid))
            else:
                query = query.filter(CustomField.client_id == client_uuid)
        elif client_id is not None:
            return []
        if not include_inactive:
            query = query.filter(CustomField.is_active.is_(True))
        return self._attach_choices(self._ordered(query).all())

    def _row_or_404(self, field_id: Any) -> CustomField:
        field_uuid = as_uuid_or_none(field_id)
        row = self.db.get(CustomField, field_uuid) if field_uuid else None
        if row is None:
            raise FieldDefinitionNotFound("Custom field not found", field_id=str(field_id))
        return row

    def get(self, field_id: Any) -> FieldDefinition:
        row = self._row_or_404(field_id)
        return self._attach_choices([row])[0]

    def definitions_for(self, field_ids: Iterable[Any]) -> dict[str, FieldDefinition]:
        """Definitions by id, inactive ones included, for reading historical values."""
        ids = [field_uuid for field_uuid in (as_uuid_or_none(item) for item in field_ids) if field_uuid]
        if not ids:
            return {}
        rows = self._ordered(self.db.query(CustomField).filter(CustomField.id.in_(ids))).all()
        return {definition.key: definition for definition in self._attach_choices(rows)}

    def list_choices(self, field_id: Any) -> list[ChoiceDefinition]:
        row = self._row_or_404(field_id)
        rows = (
            self.db.query(FieldChoice)
            .filter(FieldChoice.field_id == row.id)
            .order_by(FieldChoice.choice_order.asc(), FieldChoice.choice_text.asc())
            .all()
        )
        return [to_choice_definition(choice) for choice in rows]

    def value_count(self, field_id: Any) -> int:
        field_uuid = as_uuid_or_none(field_id)
        if field_uuid is None:
            return 0
        return int(
            self.db.query(func.count(CustomFieldValue.id)).filter(CustomFieldValue.field_id == field_uuid).scalar() or 0
        )

    def usage_stats(self, client_id: Any = None) -> list[dict[str, Any]]:
        fields = self.list_fields(client_id)
        counts = dict(
            self.db.query(CustomFieldValue.field_id, func.count(CustomFieldValue.id))
            .group_by(CustomFieldValue.field_id)
            .all()
        )
        return [{"field": field, "usage_count": int(counts.get(uuid.UUID(field.key), 0))} for field in fields]

    # validation helpers

    def _ensure_client_exists(self, client_id: Any) -> uuid.UUID | None:
        if client_id is None or client_id == "":
            return None
        client_uuid = as_uuid_or_none(client_id)
        if client_uuid is None or self.db.get(Client, client_uuid) is None:
            raise FieldDefinitionNotFound("Client not found", client_id=str(client_id))
        return client_uuid

    def _ensure_label_free(self, label: str, client_uuid: uuid.UUID | None, exclude_id: uuid.UUID | None = None) -> None:
        query = self.db.query(CustomField.id).filter(func.lower(CustomField.label) == label.lower())
        if client_uuid is None:
            query = query.filter(CustomField.client_id.is_(None))
        else:
            query = query.filter(CustomField.client_id == client_uuid)
        if exclude_id is not None:
            query = query.filter(CustomField.id != exclude_id)
        if query.first() is not None:
            raise FieldDefinitionConflict(f"Custom field label '{label}' already exists")

    def _next_field_order(self, client_uuid: uuid.UUID | None) -> int:
        query = self.db.query(func.max(CustomField.sort_order))
        if client_uuid is None:
            query = query.filter(CustomField.client_id.is_(None))
        else:
            query = query.filter(CustomField.client_id == client_uuid)
        return int(query.scalar() or 0) + 1

    def _next_choice_order(self, field_uuid: uuid.UUID) -> int:
        current = self.db.query(func.max(FieldChoice.choice_order)).filter(FieldChoice.field_id == field_uuid).scalar()
        return int(current or 0) + 1

    def _choice_count(self, field_uuid: uuid.UUID) -> int:
        return int(self.db.query(func.count(FieldChoice.id)).filter(FieldChoice.field_id == field_uuid).scalar() or 0)

    @staticmethod
    def _clean_choices(raw_choices: Iterable[Any] | None) -> list[tuple[str, int | None]]:
        cleaned: list[tuple[str, int | None]] = []
        seen: set[str] = set()
        for item in raw_choices or []:
            if isinstance(item, dict):
                text, order = item.get("text"), item.get("order")
            else:
                text, order = item, None
            text = _clean_choice_text(text)
            if text.lower() in seen:
                raise FieldDefinitionConflict("Duplicate choice texts in request")
            seen.add(text.lower())
            cleaned.append((text, int(order) if order is not None else None))
        return cleaned

    # writes

    def create(self, data: dict[str, Any], actor: str = "system") -> FieldDefinition:
        label = _clean_label(data.get("label"))
        field_type = _parse_type(data.get("type"))
        client_uuid = self._ensure_client_exists(data.get("client_id"))
        self._ensure_label_free(label, client_uuid)
        choices = self._clean_choices(data.get("choices"))
        active = bool(data.get("active", True))
        if field_type is FieldType.DROPDOWN and not choices:
            raise FieldDefinitionConflict("Dropdown fields need at least one choice")
        if field_type is not FieldType.DROPDOWN and choices:
            raise FieldDefinitionConflict("Only dropdown fields can have choices")

        order = data.get("order")
        row = CustomField(
            label=label,
            field_type=field_type.value,
            sort_order=int(order) if order is not None else self._next_field_order(client_uuid),
            required=bool(data.get("required", False)),
            is_active=active,
            client_id=client_uuid,
            responsible=actor,
        )
        self.db.add(row)
        self.db.flush()
        for index, (text, choice_order) in enumerate(choices, start=1):
            self.db.add(FieldChoice(field_id=row.id, choice_text=text, choice_order=choice_order if choice_order is not None else index))
        self.db.commit()
        self.db.refresh(row)
        _LOG.info("custom field created id=%s type=%s client=%s by=%s", row.id, row.field_type, row.client_id, actor)
        return self.get(row.id)

    def update(self, field_id: Any, patch: dict[str, Any], actor: str = "system") -> FieldDefinition:
        row = self._row_or_404(field_id)
        if not patch:
            raise FieldDefinitionConflict("No fields to update")

        if "label" in patch:
            label = _clean_label(patch.get("label"))
            self._ensure_label_free(label, row.client_id, exclude_id=row.id)
            row.label = label
        if "type" in patch and patch.get("type") is not None:
            new_type = _parse_type(patch.get("type"))
            if new_type.value != row.field_type:
                if self.value_count(row.id) > 0:
                    raise FieldTypeLocked(
                        f"Field '{row.label}' already has recorded values; its type cannot change",
                        field_id=str(row.id),
                    )
                if row.field_type == FieldType.DROPDOWN.value:
                    self.db.query(FieldChoice).filter(FieldChoice.field_id == row.id).delete(synchronize_session=False)
                row.field_type = new_type.value
        if "order" in patch and patch.get("order") is not None:
            row.sort_order = int(patch["order"])
        if "required" in patch and patch.get("required") is not None:
            row.required = bool(patch["required"])
        if "active" in patch and patch.get("active") is not None:
            row.is_active = bool(patch["active"])

        if row.field_type == FieldType.DROPDOWN.value and row.is_active and self._choice_count(row.id) == 0:
            self.db.rollback()
            raise FieldDefinitionConflict("Dropdown fields need at least one choice")

        row.responsible = actor
        self.db.add(row)
        self.db.commit()
        return self.get(row.id)

    def toggle_active(self, field_id: Any, actor: str = "system") -> FieldDefinition:
        row = self._row_or_404(field_id)
        return self.update(row.id, {"active": not row.is_active}, actor)

    def delete(self, field_id: Any) -> None:
        row = self._row_or_404(field_id)
        used = self.value_count(row.id)
        if used:
            raise FieldInUse(
                f"Field '{row.label}' has {used} recorded values; deactivate it instead",
                field_id=str(row.id),
            )
        self.db.query(FieldChoice).filter(FieldChoice.field_id == row.id).delete(synchronize_session=False)
        self.db.delete(row)
        self.db.commit()
        _LOG.info("custom field deleted id=%s", row.id)

    def reorder(self, orders: Iterable[tuple[Any, int]], actor: str = "system") -> list[FieldDefinition]:
        pairs = list(orders)
        rows = [(self._row_or_404(field_id), int(order)) for field_id, order in pairs]
        for row, order in rows:
            row.sort_order = order
            row.responsible = actor
            self.db.add(row)
        self.db.commit()
        return [self.get(row.id) for row, _ in rows]

    def add_choice(self, field_id: Any, text: Any, order: int | None = None) -> ChoiceDefinition:
        row = self._row_or_404(field_id)
        if row.field_type != FieldType.DROPDOWN.value:
            raise FieldDefinitionConflict("Only dropdown fields can have choices")
        text = _clean_choice_text(text)
        self._ensure_choice_text_free(row.id, text)
        choice = FieldChoice(
            field_id=row.id,
            choice_text=text,
            choice_order=int(order) if order is not None else self._next_choice_order(row.id),
        )
        self.db.add(choice)
        self.db.commit()
        self.db.refresh(choice)
        return to_choice_definition(choice)

    def _ensure_choice_text_free(self, field_uuid: uuid.UUID, text: str, exclude_id: uuid.UUID | None = None) -> None:
        query = self.db.query(FieldChoice.id).filter(
            FieldChoice.field_id == field_uuid,
            func.lower(FieldChoice.choice_text) == text.lower(),
        )
        if exclude_id is not None:
            query = query.filter(FieldChoice.id != exclude_id)
        if query.first() is not None:
            raise FieldDefinitionConflict(f"Choice text '{text}' already exists for this field")

    def _choice_or_404(self, field: CustomField, choice_id: Any) -> FieldChoice:
        choice_uuid = as_uuid_or_none(choice_id)
        choice = self.db.get(FieldChoice, choice_uuid) if choice_uuid else None
        if choice is None or choice.field_id != field.id:
            raise FieldDefinitionNotFound("Choice not found", choice_id=str(choice_id))
        return choice

    def update_choice(self, field_id: Any, choice_id: Any, text: Any = None, order: int | None = None) -> ChoiceDefinition:
        row = self._row_or_404(field_id)
        choice = self._choice_or_404(row, choice_id)
        if text is not None:
            text = _clean_choice_text(text)
            self._ensure_choice_text_free(row.id, text, exclude_id=choice.id)
            choice.choice_text = text
        if order is not None:
            choice.choice_order = int(order)
        self.db.add(choice)
        self.db.commit()
        self.db.refresh(choice)
        return to_choice_definition(choice)

    def delete_choice(self, field_id: Any, choice_id: Any) -> None:
        row = self._row_or_404(field_id)
        choice = self._choice_or_404(row, choice_id)
        if row.is_active and self._choice_count(row.id) <= 1:
            raise FieldDefinitionConflict("An active dropdown field must keep at least one choice")
        used = self.db.query(CustomFieldValue.id).filter(CustomFieldValue.choice_id == choice.id).first()
        if used is not None:
            raise FieldInUse("Choice has recorded values and cannot be deleted", choice_id=str(choice.id))
        self.db.delete(choice)
        self.db.commit()

    def reorder_choices(self, field_id: Any, orders: Iterable[tuple[Any, int]]) -> list[ChoiceDefinition]:
        row = self._row_or_404(field_id)
        for choice_id, order in orders:
            choice = self._choice_or_404(row, choice_id)
            choice.choice_order = int(order)
            self.db.add(choice)
        self.db.commit()
        return self.list_choices(row.id)
