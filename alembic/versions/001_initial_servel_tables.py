"""Initial migration: sync bookkeeping, territories, table results, aggregates, candidates.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "sync_resources",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("archive", sa.String(200), nullable=False),
        sa.Column("last_iteration", sa.String(50), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "territories",
        sa.Column("id_mesa", sa.String(50), primary_key=True),
        sa.Column("id_region", sa.Integer, nullable=False),
        sa.Column("region", sa.String(200), nullable=False),
        sa.Column("orden_region", sa.Integer, nullable=True),
        sa.Column("id_cirsen", sa.Integer, nullable=True),
        sa.Column("glosacirsen", sa.String(200), nullable=True),
        sa.Column("orden_cirsen", sa.Integer, nullable=True),
        sa.Column("id_distrito", sa.Integer, nullable=True),
        sa.Column("distrito", sa.String(200), nullable=True),
        sa.Column("orden_distrito", sa.Integer, nullable=True),
        sa.Column("id_provincia", sa.Integer, nullable=True),
        sa.Column("provincia", sa.String(200), nullable=True),
        sa.Column("orden_provincia", sa.Integer, nullable=True),
        sa.Column("id_circ_provincial", sa.Integer, nullable=True),
        sa.Column("circ_provincial", sa.String(200), nullable=True),
        sa.Column("orden_circ_provincial", sa.Integer, nullable=True),
        sa.Column("cod_colegio_escrutador", sa.Integer, nullable=True),
        sa.Column("glosa_colegio_escrutador", sa.String(200), nullable=True),
        sa.Column("cod_colesc", sa.Integer, nullable=True),
        sa.Column("sede_colegio_escrutador", sa.String(300), nullable=True),
        sa.Column("id_comuna", sa.Integer, nullable=False),
        sa.Column("comuna", sa.String(200), nullable=False),
        sa.Column("orden_comuna", sa.Integer, nullable=True),
        sa.Column("id_circuns", sa.Integer, nullable=True),
        sa.Column("circuns", sa.String(200), nullable=True),
        sa.Column("orden_circuns", sa.Integer, nullable=True),
        sa.Column("id_local", sa.Integer, nullable=True),
        sa.Column("local", sa.String(300), nullable=True),
        sa.Column("orden_local", sa.Integer, nullable=True),
        sa.Column("mesa", sa.String(50), nullable=False),
        sa.Column("cupos_presidencial", sa.Integer, nullable=True),
        sa.Column("cupos_diputados", sa.Integer, nullable=True),
        sa.Column("cupos_senadores", sa.Integer, nullable=True),
        sa.Column("eleccion_presidencial", sa.Boolean, nullable=True),
        sa.Column("eleccion_diputados", sa.Boolean, nullable=True),
        sa.Column("eleccion_senadores", sa.Boolean, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_territories_region_comuna", "territories", ["id_region", "id_comuna"])
    op.create_index("idx_territories_comuna_local", "territories", ["id_comuna", "id_local"])
    op.create_index("idx_territories_distrito", "territories", ["id_distrito"])
    op.create_index("idx_territories_cirsen", "territories", ["id_cirsen"])

    op.create_table(
        "mesa_results",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("cod_eleccion", sa.Integer, nullable=False),
        sa.Column("id_mesa", sa.String(50), nullable=False),
        sa.Column("iteracion", sa.String(50), nullable=True),
        sa.Column("porcentaje", sa.String(20), nullable=True),
        sa.Column("id_region", sa.Integer, nullable=True),
        sa.Column("id_cirsen", sa.Integer, nullable=True),
        sa.Column("id_distrito", sa.Integer, nullable=True),
        sa.Column("id_provincia", sa.Integer, nullable=True),
        sa.Column("id_circ_provincial", sa.Integer, nullable=True),
        sa.Column("id_comuna", sa.Integer, nullable=True),
        sa.Column("orden_comuna", sa.Integer, nullable=True),
        sa.Column("id_colegio", sa.Integer, nullable=True),
        sa.Column("mesa", sa.Integer, nullable=True),
        sa.Column("id_local", sa.Integer, nullable=True),
        sa.Column("orden_local", sa.Integer, nullable=True),
        sa.Column("envio", sa.String(50), nullable=True),
        sa.Column("instalada", sa.Integer, nullable=False, server_default="0"),
        sa.Column("blancos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("nulos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_emitidos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_general", sa.Integer, nullable=False, server_default="0"),
        sa.Column("electores", sa.Integer, nullable=True),
        sa.Column("path_s3", sa.String(500), nullable=True),
        sa.Column("candidatos", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        *_timestamps(),
        sa.UniqueConstraint("cod_eleccion", "id_mesa", name="uq_mesa_results_eleccion_mesa"),
    )
    op.create_index("idx_mesa_results_eleccion_distrito", "mesa_results", ["cod_eleccion", "id_distrito"])
    op.create_index("idx_mesa_results_eleccion_cirsen", "mesa_results", ["cod_eleccion", "id_cirsen"])
    op.create_index("idx_mesa_results_region_comuna", "mesa_results", ["id_region", "id_comuna"])
    op.create_index("idx_mesa_results_id_mesa", "mesa_results", ["id_mesa"])

    op.create_table(
        "aggregate_results",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("id_eleccion", sa.Integer, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("iteracion", sa.String(50), nullable=True),
        sa.Column("votos_validos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("nulos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("blancos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_escrutadas", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_votacion", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_mesas", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_instaladas", sa.Integer, nullable=False, server_default="0"),
        sa.Column("porc", sa.String(20), nullable=False, server_default="0.00"),
        sa.Column("total_candidatos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_nominados", sa.Integer, nullable=False, server_default="0"),
        sa.Column("detalles", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("extra", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
        sa.UniqueConstraint("id_eleccion", "name", name="uq_aggregate_results_eleccion_name"),
    )
    op.create_index("idx_aggregate_results_iteracion", "aggregate_results", ["iteracion"])

    op.create_table(
        "candidates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("candidato", sa.String(300), nullable=False),
        sa.Column("sigla_partido", sa.String(50), nullable=True),
        sa.Column("orden", sa.Integer, nullable=True),
        sa.Column("electo", sa.Integer, nullable=True),
        sa.Column("filter_name", sa.String(300), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_candidates_sigla_partido", "candidates", ["sigla_partido"])


def downgrade() -> None:
    op.drop_table("candidates")
    op.drop_table("aggregate_results")
    op.drop_table("mesa_results")
    op.drop_table("territories")
    op.drop_table("sync_resources")
