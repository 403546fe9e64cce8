"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from servel_api.models.aggregate_result import AggregateResult
from servel_api.models.candidate import Candidate
from servel_api.models.mesa_result import MesaResult
from servel_api.models.sync_resource import SyncResource
from servel_api.models.territory import Territory

__all__ = [
    "AggregateResult",
    "Candidate",
    "MesaResult",
    "SyncResource",
    "Territory",
]
