from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class PatientEntryState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_type: str = Field(default="new", alias="appointmentType")
    outcome_id: Optional[str] = Field(default=None, alias="outcomeId")
    # fieldId -> raw form value; only lives while the form is being composed
    custom_fields: dict[str, Any] = Field(default_factory=dict, alias="customFields")


class ServiceLogFormState(BaseModel):
    """The in-progress service-log form; also the draft snapshot shape."""

    model_config = ConfigDict(populate_by_name=True)

    client_id: Optional[str] = Field(default=None, alias="clientId")
    activity_id: Optional[str] = Field(default=None, alias="activityId")
    service_date: Optional[date] = Field(default=None, alias="serviceDate")
    patient_count: Optional[int] = Field(default=1, alias="patientCount")
    entries: list[PatientEntryState] = Field(default_factory=list)

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BindRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: Optional[str] = Field(default=None, alias="clientId")
    entry: PatientEntryState = Field(default_factory=PatientEntryState)


class EntryValuesIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    custom_fields: dict[str, Any] = Field(default_factory=dict, alias="customFields")
