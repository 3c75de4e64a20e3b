import uuid

from sqlalchemy import Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from servicelog.db.session import Base
from servicelog.models.common import TimestampMixin, UUIDMixin


class FieldChoice(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "field_choices"

    field_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    choice_text: Mapped[str] = mapped_column(String(100), nullable=False)
    choice_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
