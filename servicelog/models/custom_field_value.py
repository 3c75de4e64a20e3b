import uuid

from sqlalchemy import Boolean, Float, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from servicelog.db.session import Base
from servicelog.models.common import TimestampMixin, UUIDMixin


class CustomFieldValue(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "custom_field_values"
    __table_args__ = (
        UniqueConstraint("patient_entry_id", "field_id", name="uq_custom_field_values_entry_field"),
    )

    patient_entry_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    field_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    # Field type the value was encoded under; exactly one slot below matches it.
    value_type: Mapped[str] = mapped_column(String(20), nullable=False)
    choice_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    text_value: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    number_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    checkbox_value: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
