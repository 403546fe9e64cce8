"""Registry of the upstream archives the service knows how to sync."""

import enum
from dataclasses import dataclass

from servel_api.core.config import Settings


class ResourceKind(enum.StrEnum):
    """What a resource's payload contains, which decides how it is merged."""

    TERRITORIES = "territories"
    INSTALLATION = "installation"
    TOTALS = "totals"
    TABLES = "tables"


@dataclass(frozen=True)
class Resource:
    """One syncable upstream feed.

    Attributes:
        key: Stable identifier used in the API, logs and ``sync_resources``.
        archive: Archive file name relative to the upstream base URL.
        kind: Payload family.
        election_code: Race the payload belongs to (None for shared feeds).
        timeout: HTTP timeout in seconds for the download.
        batch_size: Records per upsert chunk.
        scheduled: Whether the scheduler picks it up; unscheduled resources
            are only synced on explicit request.
    """

    key: str
    archive: str
    kind: ResourceKind
    election_code: int | None
    timeout: float
    batch_size: int
    scheduled: bool = True

    @property
    def json_name(self) -> str:
        """Name of the JSON entry expected inside the archive."""
        return self.archive.removesuffix(".zip") + ".json"


def build_resources(settings: Settings) -> dict[str, Resource]:
    """Build the resource registry from settings.

    Order matters: the installation feed comes first so that, in a
    sequential cold-start cycle, the lightweight feed lands before the
    large per-table dumps.

    Args:
        settings: Application settings.

    Returns:
        Resources keyed by ``Resource.key``, in sync order.
    """
    small = settings.sync_small_timeout
    large = settings.sync_large_timeout
    races = {
        "presidencial": settings.servel_presidential_code,
        "senadores": settings.servel_senators_code,
        "diputados": settings.servel_deputies_code,
    }

    resources = [
        Resource(
            key="territorios",
            archive="territorios.zip",
            kind=ResourceKind.TERRITORIES,
            election_code=None,
            timeout=large,
            batch_size=settings.sync_table_batch_size,
            scheduled=False,
        ),
        Resource(
            key="constitucion",
            archive="constitucion.zip",
            kind=ResourceKind.INSTALLATION,
            election_code=None,
            timeout=small,
            batch_size=settings.sync_batch_size,
        ),
    ]
    for race, code in races.items():
        resources.append(
            Resource(
                key=f"totales_{race}",
                archive=f"total_votacion_{code}.zip",
                kind=ResourceKind.TOTALS,
                election_code=code,
                timeout=small,
                batch_size=settings.sync_batch_size,
            )
        )
    for race, code in races.items():
        resources.append(
            Resource(
                key=f"mesas_{race}",
                archive=f"mesas_{code}.zip",
                kind=ResourceKind.TABLES,
                election_code=code,
                timeout=large,
                batch_size=settings.sync_table_batch_size,
            )
        )
    return {resource.key: resource for resource in resources}
