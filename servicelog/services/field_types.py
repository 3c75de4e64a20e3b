from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Final, Union


class FieldType(str, Enum):
    DROPDOWN = "dropdown"
    TEXT = "text"
    NUMBER = "number"
    CHECKBOX = "checkbox"

    @classmethod
    def parse(cls, value: Any) -> "FieldType":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown field type: {value!r}") from None


FIELD_TYPE_VALUES = tuple(item.value for item in FieldType)

# Stored in the choice slot when a dropdown was rendered but left unanswered or cleared.
NO_SELECTION: Final = None


@dataclass(frozen=True)
class ChoiceDefinition:
    id: Any
    text: str
    order: int = 0


@dataclass(frozen=True)
class FieldDefinition:
    id: Any
    label: str
    type: FieldType
    order: int = 0
    active: bool = True
    client_id: Any = None
    required: bool = False
    choices: tuple[ChoiceDefinition, ...] = field(default_factory=tuple)
    created_at: datetime | None = None

    @property
    def key(self) -> str:
        return str(self.id)

    @property
    def is_global(self) -> bool:
        return self.client_id is None

    def ordered_choices(self) -> list[ChoiceDefinition]:
        return sorted(self.choices, key=lambda choice: (choice.order, str(choice.text).lower()))

    def find_choice(self, raw: Any) -> ChoiceDefinition | None:
        wanted = str(raw).strip()
        for choice in self.choices:
            if str(choice.id) == wanted:
                return choice
        return None


# Tagged union of the four value shapes. A payload always carries exactly one slot.


@dataclass(frozen=True)
class ChoiceValue:
    field_type: ClassVar[FieldType] = FieldType.DROPDOWN
    choice_id: Any = NO_SELECTION

    @property
    def is_selected(self) -> bool:
        return self.choice_id is not NO_SELECTION

    def to_dict(self) -> dict[str, Any]:
        return {"choiceId": self.choice_id}


@dataclass(frozen=True)
class TextValue:
    field_type: ClassVar[FieldType] = FieldType.TEXT
    text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"textValue": self.text}


@dataclass(frozen=True)
class NumberValue:
    field_type: ClassVar[FieldType] = FieldType.NUMBER
    number: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"numberValue": self.number}


@dataclass(frozen=True)
class CheckboxValue:
    field_type: ClassVar[FieldType] = FieldType.CHECKBOX
    checked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"checkboxValue": self.checked}


FieldValuePayload = Union[ChoiceValue, TextValue, NumberValue, CheckboxValue]


@dataclass(frozen=True)
class StoredFieldValue:
    """A persisted value as the codec sees it: owning entry, field and payload."""

    field_id: Any
    payload: FieldValuePayload
    patient_entry_id: Any = None
    id: Any = None


_ZERO_VALUES: dict[FieldType, Any] = {
    FieldType.DROPDOWN: "",
    FieldType.TEXT: "",
    FieldType.NUMBER: 0,
    FieldType.CHECKBOX: False,
}


def zero_value(field_type: FieldType) -> Any:
    return _ZERO_VALUES[field_type]


def ensure_covers_field_types(table: dict, name: str) -> None:
    missing = set(FieldType) - set(table)
    if missing:
        raise RuntimeError(f"{name} does not handle field types: {sorted(item.value for item in missing)}")


ensure_covers_field_types(_ZERO_VALUES, "zero_value")
