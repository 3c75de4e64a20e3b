from typing import Optional

from pydantic import BaseModel, Field, field_validator

from servicelog.services.field_types import FIELD_TYPE_VALUES


def _normalize_type(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if normalized not in FIELD_TYPE_VALUES:
        raise ValueError("type must be one of: " + ", ".join(FIELD_TYPE_VALUES))
    return normalized


class ChoiceIn(BaseModel):
    text: str = Field(min_length=1, max_length=100)
    order: Optional[int] = Field(default=None, ge=0)


class ChoicePatch(BaseModel):
    text: Optional[str] = Field(default=None, min_length=1, max_length=100)
    order: Optional[int] = Field(default=None, ge=0)


class CustomFieldCreate(BaseModel):
    label: str = Field(min_length=2, max_length=100)
    type: str
    order: Optional[int] = Field(default=None, ge=0)
    required: bool = False
    active: bool = True
    client_id: Optional[str] = None
    choices: list[ChoiceIn] = Field(default_factory=list)

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: str) -> str:
        return _normalize_type(value)


class ClientFieldCreate(BaseModel):
    label: str = Field(min_length=2, max_length=100)
    type: str
    order: Optional[int] = Field(default=None, ge=0)
    required: bool = False
    active: bool = True
    choices: list[ChoiceIn] = Field(default_factory=list)

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: str) -> str:
        return _normalize_type(value)


class CustomFieldPatch(BaseModel):
    label: Optional[str] = Field(default=None, min_length=2, max_length=100)
    type: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)
    required: Optional[bool] = None
    active: Optional[bool] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_type(value)


class OrderItem(BaseModel):
    id: str
    order: int = Field(ge=0)


class ReorderRequest(BaseModel):
    items: list[OrderItem] = Field(min_length=1)
