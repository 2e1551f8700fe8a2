from collections.abc import Callable
from datetime import datetime, timezone

from ..errors import ProviderUnavailable, SnapshotFailed, ZoneNotFound
from ..inventory import InventoryFetcher
from ..logger import logger
from ..resolver import Resolver
from ..schemas.compute import DiskRecord, SnapshotRecord
from ..schemas.operations import SnapshotResult
from ..walkers import compute


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotOrchestrator:
    def __init__(
        self,
        fetcher: InventoryFetcher,
        resolver: Resolver,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.fetcher = fetcher
        self.resolver = resolver
        self.clock = clock

    def default_name(self, disk: str) -> str:
        return f"{disk}-snap-{self.clock():%Y%m%d-%H%M%S}"

    def disk_zone(self, project_id: str, disk: str) -> str:
        """Looks the disk up live; disks are not part of the cached inventory."""
        for record in self.fetcher.fetch_disks(project_id, disk):
            if record.name == disk and record.zone:
                return record.zone
        raise ZoneNotFound(project_id, disk)

    def snapshot(
        self,
        project_id: str,
        disk: str,
        zone: str | None = None,
        name: str | None = None,
    ) -> SnapshotResult:
        """
        Creates one snapshot synchronously. A failure is final; nothing is
        retried.
        """
        zone = zone or self.disk_zone(project_id, disk)
        snapshot_name = name or self.default_name(disk)

        logger.debug(f"Creating snapshot {snapshot_name} of {disk} in {zone}")
        try:
            compute.create_disk_snapshot(project_id, zone, disk, snapshot_name)
        except Exception as e:
            raise SnapshotFailed(disk, snapshot_name, e) from e

        return SnapshotResult(
            project_id=project_id,
            disk=disk,
            zone=zone,
            snapshot_name=snapshot_name,
            created_at=self.clock(),
        )

    def _scan(
        self, pattern: str, fetch: Callable[[str], list], kind: str
    ) -> dict[str, list]:
        needle = pattern.lower()
        found: dict[str, list] = {}
        for project in self.resolver.projects():
            pid = project.project_id
            try:
                items = fetch(pid)
            except ProviderUnavailable as e:
                logger.warning(f"Skipping {kind} in {pid}: {e}")
                continue
            matches = [i for i in items if needle in i.name.lower()]
            if matches:
                found[pid] = matches
        return found

    def find_snapshots(self, pattern: str) -> dict[str, list[SnapshotRecord]]:
        """Snapshots whose name contains pattern, grouped by project."""
        return self._scan(pattern, self.fetcher.fetch_snapshots, "snapshots")

    def find_disks(self, pattern: str) -> dict[str, list[DiskRecord]]:
        """Disks whose name contains pattern, grouped by project."""
        return self._scan(pattern, self.fetcher.fetch_disks, "disks")
