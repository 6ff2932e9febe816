"""ORM models backing the progress persistence layer."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class ProgressRecordModel(TimestampMixin, Base):
    """One persisted progress value, keyed by learner namespace and state key."""

    __tablename__ = "progress_records"
    __table_args__ = (UniqueConstraint("namespace", "key", name="uq_progress_records_namespace_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[Any] = mapped_column(JSONType, nullable=True)


__all__ = ["ProgressRecordModel"]
