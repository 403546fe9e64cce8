"""Candidate ORM model (deduplicated across aggregate snapshots)."""

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from servel_api.models.base import Base, TimestampMixin


class Candidate(Base, TimestampMixin):
    """Candidate identity extracted while ingesting aggregate results."""

    __tablename__ = "candidates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    candidato: Mapped[str] = mapped_column(String(300), nullable=False)
    sigla_partido: Mapped[str | None] = mapped_column(String(50), nullable=True)
    orden: Mapped[int | None] = mapped_column(Integer, nullable=True)
    electo: Mapped[int | None] = mapped_column(Integer, nullable=True)
    filter_name: Mapped[str | None] = mapped_column(String(300), nullable=True)

    __table_args__ = (Index("idx_candidates_sigla_partido", "sigla_partido"),)
