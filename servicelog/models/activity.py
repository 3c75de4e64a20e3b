from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from servicelog.db.session import Base
from servicelog.models.common import TimestampMixin, UUIDMixin


class Activity(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "activities"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
