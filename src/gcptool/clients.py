"""
Process-wide Google API clients, built on first use.

Walkers never construct clients themselves; tests patch these getters.
"""

from functools import lru_cache

from google.cloud import compute_v1, resourcemanager_v3


@lru_cache(maxsize=1)
def get_compute_instances_client() -> compute_v1.InstancesClient:
    return compute_v1.InstancesClient()


@lru_cache(maxsize=1)
def get_disks_client() -> compute_v1.DisksClient:
    return compute_v1.DisksClient()


@lru_cache(maxsize=1)
def get_compute_snapshots_client() -> compute_v1.SnapshotsClient:
    return compute_v1.SnapshotsClient()


@lru_cache(maxsize=1)
def get_projects_client() -> resourcemanager_v3.ProjectsClient:
    return resourcemanager_v3.ProjectsClient()
