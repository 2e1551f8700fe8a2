from typing import Any

from google.cloud import compute_v1
from tenacity import retry

from ..clients import (
    get_compute_instances_client,
    get_compute_snapshots_client,
    get_disks_client,
)
from ..core import RETRY_CONFIG
from ..logger import logger
from ..schemas.compute import DiskRecord, InstanceRecord, SnapshotRecord


def _basename(url: str | None) -> str:
    # e.g. https://.../zones/us-central1-a -> us-central1-a
    return url.split("/")[-1] if url else ""


def _to_record(project_id: str, instance: Any) -> InstanceRecord:
    internal_ip = None
    external_ip = None
    if instance.network_interfaces:
        nic = instance.network_interfaces[0]
        internal_ip = nic.network_i_p or None
        if nic.access_configs:
            external_ip = nic.access_configs[0].nat_i_p or None

    return InstanceRecord(
        project_id=project_id,
        name=instance.name,
        zone=_basename(instance.zone),
        status=str(instance.status),
        external_ip=external_ip,
        internal_ip=internal_ip,
        machine_type=_basename(instance.machine_type),
    )


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def list_instances(project_id: str) -> list[InstanceRecord]:
    """
    Lists every instance of a project across all zones in one aggregated call.
    """
    client = get_compute_instances_client()
    request = compute_v1.AggregatedListInstancesRequest(project=project_id)

    results = []
    # The client library handles pagination automatically when iterating
    for _zone, scoped in client.aggregated_list(request=request):
        for instance in scoped.instances or []:
            results.append(_to_record(project_id, instance))
    return results


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def describe_instance(project_id: str, zone: str, name: str) -> InstanceRecord:
    """Reads one instance live, bypassing any inventory cache."""
    client = get_compute_instances_client()
    request = compute_v1.GetInstanceRequest(
        project=project_id, zone=zone, instance=name
    )
    return _to_record(project_id, client.get(request=request))


def start_instance(project_id: str, zone: str, name: str) -> str:
    """
    Requests a start and returns the operation name without waiting on it.
    """
    client = get_compute_instances_client()
    request = compute_v1.StartInstanceRequest(
        project=project_id, zone=zone, instance=name
    )
    operation = client.start(request=request)
    logger.debug(f"start requested for {project_id}/{zone}/{name}: {operation.name}")
    return str(operation.name)


def stop_instance(project_id: str, zone: str, name: str) -> str:
    """
    Requests a stop and returns the operation name without waiting on it.
    """
    client = get_compute_instances_client()
    request = compute_v1.StopInstanceRequest(
        project=project_id, zone=zone, instance=name
    )
    operation = client.stop(request=request)
    logger.debug(f"stop requested for {project_id}/{zone}/{name}: {operation.name}")
    return str(operation.name)


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def list_disks(project_id: str, api_filter: str | None = None) -> list[DiskRecord]:
    """
    Lists disks of a project across all zones, optionally narrowed by an
    API-side filter expression such as 'name = "my-disk"'.
    """
    client = get_disks_client()
    request = compute_v1.AggregatedListDisksRequest(project=project_id)
    if api_filter:
        request.filter = api_filter

    results = []
    for _zone, scoped in client.aggregated_list(request=request):
        for disk in scoped.disks or []:
            results.append(
                DiskRecord(
                    project_id=project_id,
                    name=disk.name,
                    zone=_basename(disk.zone),
                    size_gb=disk.size_gb or 0,
                    type=_basename(disk.type_),
                    status=str(disk.status),
                    users=[_basename(u) for u in disk.users or []],
                )
            )
    return results


def create_disk_snapshot(
    project_id: str, zone: str, disk: str, snapshot_name: str
) -> None:
    """
    Creates a snapshot of a zonal disk and blocks until the operation ends.
    """
    client = get_disks_client()
    request = compute_v1.CreateSnapshotDiskRequest(
        project=project_id,
        zone=zone,
        disk=disk,
        snapshot_resource=compute_v1.Snapshot(name=snapshot_name),
    )
    operation = client.create_snapshot(request=request)
    # Raises if the operation finished with an error.
    operation.result()


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def list_snapshots(project_id: str) -> list[SnapshotRecord]:
    """
    Lists all disk snapshots in a project.
    """
    snapshot_client = get_compute_snapshots_client()
    request = compute_v1.ListSnapshotsRequest(project=project_id)

    results = []
    for snap in snapshot_client.list(request=request):
        results.append(
            SnapshotRecord(
                project_id=project_id,
                name=snap.name,
                disk_size_gb=snap.disk_size_gb,
                status=str(snap.status),
                creation_timestamp=snap.creation_timestamp or None,  # type: ignore[arg-type]
                source_disk=_basename(snap.source_disk),
            )
        )
    return results
