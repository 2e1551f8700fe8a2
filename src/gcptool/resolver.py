"""
Name-to-location resolution across every accessible project.

A bare instance name is resolved in two passes over the projects, in the
order the project listing returns them:

1. Exact pass: the first project holding an instance with exactly that name
   wins, and later projects are never read.
2. Partial pass: every instance whose name contains the query
   (case-insensitive) is collected, grouped by project order and then by
   inventory order. One hit resolves directly; several hits are returned as
   candidates to interactive callers, or collapse to the first hit otherwise.

Inventory is read from the cache while fresh and fetched live otherwise. A
project whose inventory cannot be fetched contributes nothing to a scan.
"""

from collections.abc import Sequence

from .cache import CacheStore
from .core import (
    PROJECTS_CACHE_KEY,
    ROLE_DISPATCHER,
    STATUS_RUNNING,
    instances_cache_key,
)
from .errors import (
    InstanceNotFoundInProject,
    InvalidSelection,
    NotFound,
    ProviderUnavailable,
    WrongRole,
)
from .inventory import InventoryFetcher
from .logger import logger
from .schemas.compute import InstanceRecord, Project
from .schemas.resolution import Candidate, ResolvedLocation

Resolution = ResolvedLocation | list[Candidate]


def _to_candidate(record: InstanceRecord) -> Candidate:
    return Candidate(
        project_id=record.project_id,
        name=record.name,
        zone=record.zone,
        status=record.status,
        external_ip=record.external_ip,
        internal_ip=record.internal_ip,
    )


def _locate(project_id: str, name: str, zone: str) -> ResolvedLocation:
    return ResolvedLocation(project_id=project_id, instance=name, zone=zone)


class Resolver:
    def __init__(self, cache: CacheStore, fetcher: InventoryFetcher) -> None:
        self.cache = cache
        self.fetcher = fetcher

    # Inventory access (cache first, live on miss or stale)

    def projects(self, refresh: bool = False) -> list[Project]:
        rows, fresh = (None, False) if refresh else self.cache.get(PROJECTS_CACHE_KEY)
        if rows is not None and fresh:
            return [Project.from_row(row) for row in rows]
        try:
            return self.fetcher.fetch_projects()
        except ProviderUnavailable as e:
            logger.warning(f"Could not list projects: {e}")
            if rows is not None:
                logger.warning("Using stale project list from cache")
                return [Project.from_row(row) for row in rows]
            return []

    def _load_instances(
        self, project_id: str, refresh: bool = False
    ) -> tuple[list[InstanceRecord], bool]:
        """Returns (instances, fetched_live)."""
        key = instances_cache_key(project_id)
        rows, fresh = (None, False) if refresh else self.cache.get(key)
        if rows is not None and fresh:
            records = []
            for row in rows:
                try:
                    records.append(InstanceRecord.from_row(project_id, row))
                except ValueError as e:
                    logger.debug(f"Skipping cache row in {key}: {e}")
            return records, False
        try:
            return self.fetcher.fetch_instances(project_id), True
        except ProviderUnavailable as e:
            logger.warning(f"No inventory for {project_id}: {e}")
            return [], True

    def instances(self, project_id: str, refresh: bool = False) -> list[InstanceRecord]:
        return self._load_instances(project_id, refresh)[0]

    # Two-argument form

    def lookup(self, project_id: str, instance: str) -> ResolvedLocation:
        """
        Finds the zone of a named instance in a known project. A name missing
        from cached inventory triggers one live re-read before giving up.
        """
        record = self.record(project_id, instance)
        if record is None:
            raise InstanceNotFoundInProject(project_id, instance)
        return _locate(record.project_id, record.name, record.zone)

    def record(self, project_id: str, instance: str) -> InstanceRecord | None:
        records, live = self._load_instances(project_id)
        match = next((r for r in records if r.name == instance), None)
        if match is None and not live:
            logger.debug(f"{instance} not in cached inventory of {project_id}")
            records, _ = self._load_instances(project_id, refresh=True)
            match = next((r for r in records if r.name == instance), None)
        return match

    def record_for(self, location: ResolvedLocation) -> InstanceRecord | None:
        return self.record(location.project_id, location.instance)

    # Cross-project search

    def _scan(self, query: str, exclude_role: str | None = None) -> Resolution:
        def allowed(name: str) -> bool:
            return exclude_role is None or exclude_role not in name.lower()

        inventories: list[list[InstanceRecord]] = []
        for project in self.projects():
            records = self.instances(project.project_id)
            for record in records:
                if record.name == query and allowed(record.name):
                    return _locate(record.project_id, record.name, record.zone)
            inventories.append(records)

        needle = query.lower()
        return [
            _to_candidate(record)
            for records in inventories
            for record in records
            if needle in record.name.lower() and allowed(record.name)
        ]

    def search(self, query: str) -> list[Candidate]:
        """All instances whose name contains query, in project order."""
        needle = query.lower()
        return [
            _to_candidate(record)
            for project in self.projects()
            for record in self.instances(project.project_id)
            if needle in record.name.lower()
        ]

    def _settle(self, query: str, found: Resolution, interactive: bool) -> Resolution:
        if isinstance(found, ResolvedLocation):
            return found
        if not found:
            raise NotFound(query)
        if len(found) == 1 or not interactive:
            first = found[0]
            return _locate(first.project_id, first.name, first.zone)
        return found

    def resolve(
        self,
        name_or_project: str,
        instance: str | None = None,
        interactive: bool = True,
    ) -> Resolution:
        """
        Resolves (project, instance) or a bare instance name.

        Returns a ResolvedLocation, or the candidate list when an interactive
        caller has to pick between several partial matches. Raises NotFound.
        """
        if instance:
            return self.lookup(name_or_project, instance)
        return self._settle(name_or_project, self._scan(name_or_project), interactive)

    def resolve_aem(self, query: str, interactive: bool = True) -> Resolution:
        """
        Same search as resolve(), but dispatcher hosts are never candidates.
        A query that itself names a dispatcher is rejected before any lookup.
        """
        if ROLE_DISPATCHER in query.lower():
            raise WrongRole(query, ROLE_DISPATCHER)
        found = self._scan(query, exclude_role=ROLE_DISPATCHER)
        return self._settle(query, found, interactive)

    @staticmethod
    def choose_from(
        candidates: Sequence[Candidate], selection: int | str
    ) -> ResolvedLocation:
        """Maps a 1-based choice onto the candidate list."""
        try:
            index = int(str(selection).strip())
        except ValueError:
            raise InvalidSelection(selection, len(candidates)) from None
        if not 1 <= index <= len(candidates):
            raise InvalidSelection(selection, len(candidates))
        chosen = candidates[index - 1]
        return _locate(chosen.project_id, chosen.name, chosen.zone)

    # Role fan-out

    def find_by_role(
        self, project_id: str, role: str, running_only: bool = False
    ) -> list[str]:
        """Every instance name in one project containing role (any case)."""
        needle = role.lower()
        return [
            r.name
            for r in self.instances(project_id)
            if needle in r.name.lower()
            and (not running_only or r.status == STATUS_RUNNING)
        ]
