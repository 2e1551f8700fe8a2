from collections.abc import Callable, Iterable
from typing import TypeVar

from .cache import CacheStore
from .core import PROJECTS_CACHE_KEY, instances_cache_key
from .errors import ProviderUnavailable
from .logger import logger
from .schemas.compute import DiskRecord, InstanceRecord, Project, SnapshotRecord
from .walkers import compute, org

T = TypeVar("T")


class InventoryFetcher:
    """
    Live reads from the Compute Engine and Resource Manager APIs.

    Project and instance listings are written through to the cache on every
    successful call; this class is the only writer of cache entries. Any
    provider failure surfaces as ProviderUnavailable.
    """

    def __init__(self, cache: CacheStore) -> None:
        self.cache = cache

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except Exception as e:
            logger.debug(f"{operation} failed: {e}")
            raise ProviderUnavailable(operation, e) from e

    def _write_through(self, key: str, rows: Iterable[str]) -> None:
        # The live listing is still usable when the cache directory is not.
        try:
            self.cache.put(key, rows)
        except OSError as e:
            logger.warning(f"Could not write cache entry {key}: {e}")

    def fetch_projects(self) -> list[Project]:
        projects = self._call("list projects", org.list_projects)
        self._write_through(PROJECTS_CACHE_KEY, (p.to_row() for p in projects))
        return projects

    def fetch_instances(self, project_id: str) -> list[InstanceRecord]:
        instances = self._call(
            f"list instances in {project_id}",
            lambda: compute.list_instances(project_id),
        )
        self._write_through(
            instances_cache_key(project_id), (i.to_row() for i in instances)
        )
        return instances

    def fetch_disks(self, project_id: str, name: str | None = None) -> list[DiskRecord]:
        """Disks are never cached; name narrows the listing to an exact match."""
        api_filter = f'name = "{name}"' if name else None
        return self._call(
            f"list disks in {project_id}",
            lambda: compute.list_disks(project_id, api_filter),
        )

    def fetch_snapshots(self, project_id: str) -> list[SnapshotRecord]:
        return self._call(
            f"list snapshots in {project_id}",
            lambda: compute.list_snapshots(project_id),
        )

    def describe_instance(
        self, project_id: str, zone: str, name: str
    ) -> InstanceRecord:
        return self._call(
            f"describe {name}",
            lambda: compute.describe_instance(project_id, zone, name),
        )

    def refresh_all(self) -> dict[str, ProviderUnavailable]:
        """
        Re-reads the project list and every project's inventory into the
        cache. Returns the per-project failures; a failed project listing
        raises.
        """
        failures: dict[str, ProviderUnavailable] = {}
        for project in self.fetch_projects():
            try:
                self.fetch_instances(project.project_id)
            except ProviderUnavailable as e:
                failures[project.project_id] = e
        return failures
