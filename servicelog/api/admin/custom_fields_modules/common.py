from __future__ import annotations

from typing import Any

from servicelog.services.field_types import ChoiceDefinition, FieldDefinition


def choice_row(choice: ChoiceDefinition) -> dict[str, Any]:
    return {"id": choice.id, "text": choice.text, "order": choice.order}


def field_row(definition: FieldDefinition, usage_count: int | None = None) -> dict[str, Any]:
    row = {
        "id": definition.key,
        "label": definition.label,
        "type": definition.type.value,
        "order": definition.order,
        "required": definition.required,
        "active": definition.active,
        "client_id": definition.client_id,
        "is_global": definition.is_global,
        "choices": [choice_row(choice) for choice in definition.ordered_choices()],
        "created_at": definition.created_at.isoformat() if definition.created_at else None,
    }
    if usage_count is not None:
        row["usage_count"] = usage_count
    return row
