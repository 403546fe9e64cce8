"""Territory ORM model: geographic placement of every voting table."""

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from servel_api.models.base import Base, TimestampMixin


class Territory(Base, TimestampMixin):
    """Reference data for one voting table (mesa).

    Loaded from ``territorios.zip`` and replaced wholesale on reload.
    """

    __tablename__ = "territories"

    id_mesa: Mapped[str] = mapped_column(String(50), primary_key=True)

    id_region: Mapped[int] = mapped_column(Integer, nullable=False)
    region: Mapped[str] = mapped_column(String(200), nullable=False)
    orden_region: Mapped[int | None] = mapped_column(Integer, nullable=True)

    id_cirsen: Mapped[int | None] = mapped_column(Integer, nullable=True)
    glosacirsen: Mapped[str | None] = mapped_column(String(200), nullable=True)
    orden_cirsen: Mapped[int | None] = mapped_column(Integer, nullable=True)

    id_distrito: Mapped[int | None] = mapped_column(Integer, nullable=True)
    distrito: Mapped[str | None] = mapped_column(String(200), nullable=True)
    orden_distrito: Mapped[int | None] = mapped_column(Integer, nullable=True)

    id_provincia: Mapped[int | None] = mapped_column(Integer, nullable=True)
    provincia: Mapped[str | None] = mapped_column(String(200), nullable=True)
    orden_provincia: Mapped[int | None] = mapped_column(Integer, nullable=True)

    id_circ_provincial: Mapped[int | None] = mapped_column(Integer, nullable=True)
    circ_provincial: Mapped[str | None] = mapped_column(String(200), nullable=True)
    orden_circ_provincial: Mapped[int | None] = mapped_column(Integer, nullable=True)

    cod_colegio_escrutador: Mapped[int | None] = mapped_column(Integer, nullable=True)
    glosa_colegio_escrutador: Mapped[str | None] = mapped_column(String(200), nullable=True)
    cod_colesc: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sede_colegio_escrutador: Mapped[str | None] = mapped_column(String(300), nullable=True)

    id_comuna: Mapped[int] = mapped_column(Integer, nullable=False)
    comuna: Mapped[str] = mapped_column(String(200), nullable=False)
    orden_comuna: Mapped[int | None] = mapped_column(Integer, nullable=True)

    id_circuns: Mapped[int | None] = mapped_column(Integer, nullable=True)
    circuns: Mapped[str | None] = mapped_column(String(200), nullable=True)
    orden_circuns: Mapped[int | None] = mapped_column(Integer, nullable=True)

    id_local: Mapped[int | None] = mapped_column(Integer, nullable=True)
    local: Mapped[str | None] = mapped_column(String(300), nullable=True)
    orden_local: Mapped[int | None] = mapped_column(Integer, nullable=True)

    mesa: Mapped[str] = mapped_column(String(50), nullable=False)

    cupos_presidencial: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cupos_diputados: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cupos_senadores: Mapped[int | None] = mapped_column(Integer, nullable=True)

    eleccion_presidencial: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    eleccion_diputados: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    eleccion_senadores: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    __table_args__ = (
        Index("idx_territories_region_comuna", "id_region", "id_comuna"),
        Index("idx_territories_comuna_local", "id_comuna", "id_local"),
        Index("idx_territories_distrito", "id_distrito"),
        Index("idx_territories_cirsen", "id_cirsen"),
    )
