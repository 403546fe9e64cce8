"""Sync bookkeeping ORM model: one row per syncable upstream archive."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from servel_api.models.base import Base, TimestampMixin


class SyncResource(Base, TimestampMixin):
    """Last merged iteration marker and outcome for a resource.

    ``last_iteration`` is written only after a merge succeeded.
    """

    __tablename__ = "sync_resources"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    archive: Mapped[str] = mapped_column(String(200), nullable=False)
    last_iteration: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
