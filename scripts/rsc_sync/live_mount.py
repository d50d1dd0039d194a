"""vSphere Live Mount actions: mount a snapshot, unmount a live mount."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from scripts.rsc_sync.errors import APIError
from scripts.rsc_sync.graphql_client import GraphQLClient, GraphQLRequest
from scripts.rsc_sync.queries import LIVE_MOUNT_MUTATION, UNMOUNT_LIVE_MOUNT_MUTATION

logger = logging.getLogger("rsc_sync.live_mount")


@dataclass(frozen=True)
class AsyncRequest:
    """Handle for the async job RSC starts for a mount or unmount."""

    id: str
    status: str


def mount_input(
    object_id: str,
    snapshot_id: str,
    vm_name: Optional[str] = None,
    host_id: Optional[str] = None,
    power_on: bool = False,
) -> dict[str, Any]:
    options: dict[str, Any] = {"powerOn": power_on}
    if vm_name:
        options["vmName"] = vm_name
    config: dict[str, Any] = {
        "requiredRecoveryParameters": {"snapshotId": snapshot_id},
        "mountExportSnapshotJobCommonOptionsV2": options,
    }
    if host_id:
        config["hostId"] = host_id
    return {"id": object_id, "config": config}


def mount(
    client: GraphQLClient,
    object_id: str,
    snapshot_id: str,
    vm_name: Optional[str] = None,
    host_id: Optional[str] = None,
    power_on: bool = False,
) -> AsyncRequest:
    """Start a live mount of ``snapshot_id`` for the VM ``object_id``."""
    request = GraphQLRequest(
        operation_name="vSphereLiveMountMutation",
        query=LIVE_MOUNT_MUTATION,
        variables={"input": mount_input(object_id, snapshot_id, vm_name, host_id, power_on)},
        idempotent=False,
    )
    envelope = client.execute(request)
    result = _async_request(envelope, "vsphereVmInitiateLiveMountV2", request.operation_name)
    logger.info("Live mount requested for snapshot %s: %s", snapshot_id, result.status)
    return result


def unmount(client: GraphQLClient, mount_id: str, force: bool = False) -> AsyncRequest:
    request = GraphQLRequest(
        operation_name="UnmountLiveMountMutation",
        query=UNMOUNT_LIVE_MOUNT_MUTATION,
        variables={"livemountId": mount_id, "force": force},
        idempotent=False,
    )
    envelope = client.execute(request)
    result = _async_request(envelope, "vsphereVmDeleteLiveMount", request.operation_name)
    logger.info("Unmount requested for %s: %s", mount_id, result.status)
    return result


def _async_request(envelope: dict[str, Any], field: str, operation_name: str) -> AsyncRequest:
    payload = (envelope.get("data") or {}).get(field)
    if not isinstance(payload, dict):
        raise APIError([f"response has no {field} payload"], operation_name)
    error = payload.get("error") or {}
    if error.get("message"):
        raise APIError([error["message"]], operation_name)
    return AsyncRequest(id=payload.get("id") or "", status=payload.get("status") or "")
