import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TypeVar

from ..cache import CacheStore
from ..core import START_SETTLE_SECONDS, instances_cache_key
from ..errors import NotFound, OperationCancelled, ProviderUnavailable
from ..inventory import InventoryFetcher
from ..logger import logger
from ..resolver import Resolver
from ..schemas.operations import Outcome, PlannedAction, StartResult, StopResult
from ..schemas.resolution import ResolvedLocation
from ..walkers import compute

R = TypeVar("R", bound=StopResult)

# confirm(verb, project_id, plan) -> proceed?
ConfirmFn = Callable[[str, str, list[PlannedAction]], bool]


class LifecycleController:
    """
    Best-effort parallel start/stop of instances in one project.

    Each instance succeeds or fails on its own; a missing zone or a rejected
    API call is recorded in that instance's result and never stops the rest
    of the batch.
    """

    def __init__(
        self,
        resolver: Resolver,
        fetcher: InventoryFetcher,
        cache: CacheStore,
        confirm: ConfirmFn,
        settle_delay: float = START_SETTLE_SECONDS,
        max_workers: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.cache = cache
        self.confirm = confirm
        self.settle_delay = settle_delay
        self.max_workers = max_workers
        self.sleep = sleep

    def _plan(
        self, project_id: str, names: list[str], with_ip: bool
    ) -> list[tuple[str, ResolvedLocation | None, PlannedAction]]:
        plan = []
        for name in names:
            location: ResolvedLocation | None
            try:
                location = self.resolver.lookup(project_id, name)
            except NotFound:
                location = None
            external_ip = None
            if with_ip and location is not None:
                record = self.resolver.record_for(location)
                external_ip = record.external_ip if record else None
            plan.append(
                (
                    name,
                    location,
                    PlannedAction(
                        instance=name,
                        zone=location.zone if location else None,
                        external_ip=external_ip,
                    ),
                )
            )
        return plan

    def _run_batch(
        self,
        verb: str,
        project_id: str,
        names: list[str],
        force: bool,
        action: Callable[[str, str, str], str],
        result_cls: type[R],
    ) -> tuple[list[R], list[tuple[R, ResolvedLocation]]]:
        plan = self._plan(project_id, names, with_ip=(verb == "stop"))
        results: list[R | None] = [None] * len(plan)
        targets: dict[int, ResolvedLocation] = {}

        for idx, (name, location, _) in enumerate(plan):
            if location is None:
                logger.warning(f"Could not find zone for {name} in {project_id}")
                results[idx] = result_cls(
                    project_id=project_id,
                    instance=name,
                    outcome=Outcome.ZONE_NOT_FOUND,
                    error=f"Could not find zone for {name}",
                )
            else:
                targets[idx] = location

        if not targets:
            return [r for r in results if r is not None], []

        if not force and not self.confirm(verb, project_id, [p for *_, p in plan]):
            raise OperationCancelled(f"{verb} cancelled")

        workers = min(self.max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(
                    action, loc.project_id, loc.zone, loc.instance
                ): idx
                for idx, loc in targets.items()
            }
            # Each future writes only its own slot.
            for future in as_completed(futures):
                idx = futures[future]
                loc = targets[idx]
                try:
                    future.result()
                    results[idx] = result_cls(
                        project_id=project_id,
                        instance=loc.instance,
                        zone=loc.zone,
                        outcome=Outcome.DISPATCHED,
                    )
                except Exception as e:
                    logger.warning(f"Failed to {verb} {loc.instance}: {e}")
                    results[idx] = result_cls(
                        project_id=project_id,
                        instance=loc.instance,
                        zone=loc.zone,
                        outcome=Outcome.PROVIDER_ERROR,
                        error=str(e),
                    )

        # Only whole-project entries exist, so the whole inventory is stale now.
        self.cache.invalidate(instances_cache_key(project_id))

        done = [r for r in results if r is not None]
        dispatched = [
            (r, targets[i]) for i, r in enumerate(results) if r is not None and r.ok
        ]
        return done, dispatched

    def start_many(
        self, project_id: str, names: list[str], force: bool = False
    ) -> list[StartResult]:
        results, dispatched = self._run_batch(
            "start", project_id, names, force, compute.start_instance, StartResult
        )
        if not dispatched:
            return results

        self.sleep(self.settle_delay)
        for result, loc in dispatched:
            try:
                record = self.fetcher.describe_instance(
                    loc.project_id, loc.zone, loc.instance
                )
            except ProviderUnavailable as e:
                logger.debug(f"No address yet for {loc.instance}: {e}")
                continue
            result.external_ip = record.external_ip
        return results

    def stop_many(
        self, project_id: str, names: list[str], force: bool = False
    ) -> list[StopResult]:
        results, _ = self._run_batch(
            "stop", project_id, names, force, compute.stop_instance, StopResult
        )
        return results
