"""Per-table (mesa) result ORM model."""

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from servel_api.models.base import Base, JSONDocument, TimestampMixin, UUIDMixin


class MesaResult(Base, UUIDMixin, TimestampMixin):
    """Tally of one voting table for one election.

    Rows are only ever overwritten by newer iterations, never deleted.
    ``candidatos`` holds the per-candidate sub-records as a JSON list.
    """

    __tablename__ = "mesa_results"

    cod_eleccion: Mapped[int] = mapped_column(Integer, nullable=False)
    id_mesa: Mapped[str] = mapped_column(String(50), nullable=False)
    iteracion: Mapped[str | None] = mapped_column(String(50), nullable=True)
    porcentaje: Mapped[str | None] = mapped_column(String(20), nullable=True)

    id_region: Mapped[int | None] = mapped_column(Integer, nullable=True)
    id_cirsen: Mapped[int | None] = mapped_column(Integer, nullable=True)
    id_distrito: Mapped[int | None] = mapped_column(Integer, nullable=True)
    id_provincia: Mapped[int | None] = mapped_column(Integer, nullable=True)
    id_circ_provincial: Mapped[int | None] = mapped_column(Integer, nullable=True)
    id_comuna: Mapped[int | None] = mapped_column(Integer, nullable=True)
    orden_comuna: Mapped[int | None] = mapped_column(Integer, nullable=True)
    id_colegio: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mesa: Mapped[int | None] = mapped_column(Integer, nullable=True)
    id_local: Mapped[int | None] = mapped_column(Integer, nullable=True)
    orden_local: Mapped[int | None] = mapped_column(Integer, nullable=True)

    envio: Mapped[str | None] = mapped_column(String(50), nullable=True)
    instalada: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    blancos: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    nulos: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_emitidos: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_general: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    electores: Mapped[int | None] = mapped_column(Integer, nullable=True)
    path_s3: Mapped[str | None] = mapped_column(String(500), nullable=True)

    candidatos: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("cod_eleccion", "id_mesa", name="uq_mesa_results_eleccion_mesa"),
        Index("idx_mesa_results_eleccion_distrito", "cod_eleccion", "id_distrito"),
        Index("idx_mesa_results_eleccion_cirsen", "cod_eleccion", "id_cirsen"),
        Index("idx_mesa_results_region_comuna", "id_region", "id_comuna"),
        Index("idx_mesa_results_id_mesa", "id_mesa"),
    )
