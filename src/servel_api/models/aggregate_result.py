"""Per-race aggregate snapshot ORM model."""

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from servel_api.models.base import Base, JSONDocument, TimestampMixin, UUIDMixin


class AggregateResult(Base, UUIDMixin, TimestampMixin):
    """Rollup of one race for one scope (e.g. "nacional", "extranjero").

    Replaced wholesale on every new iteration. ``detalles`` keeps the
    list/party/candidate breakdown whose shape varies by race; ``extra``
    keeps top-level fields this model does not name.
    """

    __tablename__ = "aggregate_results"

    id_eleccion: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    iteracion: Mapped[str | None] = mapped_column(String(50), nullable=True)

    votos_validos: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    nulos: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    blancos: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_escrutadas: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_votacion: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_mesas: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_instaladas: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    porc: Mapped[str] = mapped_column(String(20), nullable=False, server_default="0.00")
    total_candidatos: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_nominados: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    detalles: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    extra: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("id_eleccion", "name", name="uq_aggregate_results_eleccion_name"),
        Index("idx_aggregate_results_iteracion", "iteracion"),
    )
