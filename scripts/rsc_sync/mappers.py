"""Record mappers: one raw GraphQL node in, one flat record out.

Mappers are pure. Anything they need beyond the node itself (the current
time, the SLA domain and cluster lookups) arrives through MapContext.
Missing or null optional fields become the record's zero value; a node
whose shape is wrong, or that lacks its natural key, raises MappingError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from scripts.rsc_sync.convert import (
    bytes_to_gb,
    cluster_display_name,
    hours_since,
    object_url,
    to_utc,
)
from scripts.rsc_sync.errors import MappingError
from scripts.rsc_sync.models import (
    AuditLogRecord,
    ClusterRecord,
    EventRecord,
    LiveMountRecord,
    ObjectRecord,
    SLADomainRecord,
    SnapshotRecord,
    TagAssignmentRecord,
)

PROTECTED = "Protected"
NON_REPORTING_COMPLIANCE = frozenset({"NOT_APPLICABLE", "EMPTY"})

ROLE_SOURCE = "Source"
ROLE_TARGET = "Target"
ROLE_NONE = "N/A"


@dataclass(frozen=True)
class MapContext:
    """Read-only lookups shared by every mapper call in a run."""

    instance_id: str
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sla_domains: dict[str, SLADomainRecord] = field(default_factory=dict)
    clusters: dict[str, ClusterRecord] = field(default_factory=dict)


class _Node:
    """Typed accessors over one raw node, raising MappingError on bad shapes."""

    def __init__(self, raw: Any, entity: str, key_field: str = "id") -> None:
        if not isinstance(raw, dict):
            raise MappingError(entity, None, f"node is {type(raw).__name__}, expected object")
        self.raw = raw
        self.entity = entity
        key = raw.get(key_field)
        self.key = str(key) if key not in (None, "") else None

    def require_key(self) -> str:
        if self.key is None:
            raise MappingError(self.entity, None, "node has no natural key")
        return self.key

    def _fail(self, message: str) -> MappingError:
        return MappingError(self.entity, self.key, message)

    def obj(self, name: str) -> "_Node":
        value = self.raw.get(name)
        if value is None:
            return _Node({}, self.entity)
        if not isinstance(value, dict):
            raise self._fail(f"{name} is {type(value).__name__}, expected object")
        child = _Node(value, self.entity)
        child.key = self.key
        return child

    def items(self, name: str) -> list[Any]:
        value = self.raw.get(name)
        if value is None:
            return []
        if isinstance(value, dict) and "nodes" in value:
            value = value.get("nodes") or []
        if not isinstance(value, list):
            raise self._fail(f"{name} is {type(value).__name__}, expected list")
        return value

    def text(self, name: str) -> str:
        value = self.raw.get(name)
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            raise self._fail(f"{name} is {type(value).__name__}, expected scalar")
        return str(value)

    def integer(self, name: str) -> int:
        value = self.raw.get(name)
        if value in (None, ""):
            return 0
        try:
            return int(value)
        except (TypeError, ValueError):
            raise self._fail(f"{name}={value!r} is not an integer") from None

    def flag(self, name: str) -> bool:
        value = self.raw.get(name)
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    def number(self, name: str) -> Optional[float]:
        value = self.raw.get(name)
        if value in (None, ""):
            return None
        if isinstance(value, (dict, list, bool)):
            raise self._fail(f"{name} is {type(value).__name__}, expected number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise self._fail(f"{name}={value!r} is not a number") from None

    def timestamp(self, name: str) -> Optional[datetime]:
        try:
            return to_utc(self.raw.get(name))
        except ValueError:
            raise self._fail(f"{name}={self.raw.get(name)!r} is not a timestamp") from None


def replication_role(cluster_id: str, sla: Optional[SLADomainRecord]) -> str:
    """Target when the object lives on its SLA's replication target cluster."""
    if sla is None or not sla.replication_enabled:
        return ROLE_NONE
    if cluster_id and cluster_id == sla.replication_target_cluster_id:
        return ROLE_TARGET
    return ROLE_SOURCE


def reports_on_compliance(protection_status: str, role: str, compliance_status: str) -> bool:
    if protection_status != PROTECTED:
        return False
    if role == ROLE_TARGET:
        return False
    return compliance_status not in NON_REPORTING_COMPLIANCE


def map_cluster(raw: Any, ctx: MapContext) -> ClusterRecord:
    node = _Node(raw, "clusters")
    metric = node.obj("metric")
    return ClusterRecord(
        rsc_instance=ctx.instance_id,
        cluster_id=node.require_key(),
        cluster=cluster_display_name(node.text("name")),
        status=node.text("status"),
        version=node.text("version"),
        cluster_type=node.text("type"),
        location=node.obj("geoLocation").text("address"),
        connected_state=node.obj("state").text("connectedState"),
        total_capacity_gb=bytes_to_gb(metric.number("totalCapacity")),
        used_capacity_gb=bytes_to_gb(metric.number("usedCapacity")),
        available_capacity_gb=bytes_to_gb(metric.number("availableCapacity")),
        last_connection_utc=node.timestamp("lastConnectionTime"),
    )


def map_sla_domain(raw: Any, ctx: MapContext) -> SLADomainRecord:
    node = _Node(raw, "sla_domains")
    key = node.require_key()

    frequency = node.obj("baseFrequency")
    freq_text = ""
    if frequency.integer("duration"):
        freq_text = f"{frequency.integer('duration')} {frequency.text('unit')}".strip()

    archive_targets = []
    for spec in node.items("archivalSpecs"):
        spec_node = _Node(spec, "sla_domains")
        name = spec_node.obj("storageSetting").text("name")
        if name:
            archive_targets.append(name)

    replication_specs = node.items("replicationSpecsV2")
    target = _Node({}, "sla_domains")
    if replication_specs:
        target = _Node(replication_specs[0], "sla_domains").obj("cluster")

    return SLADomainRecord(
        rsc_instance=ctx.instance_id,
        sla_domain_id=key,
        sla_domain=node.text("name"),
        description=node.text("description"),
        object_types=", ".join(str(t) for t in node.items("objectTypes")),
        protected_objects=node.integer("protectedObjectCount"),
        frequency=freq_text,
        retention_locked=node.flag("isRetentionLockedSla"),
        archival_enabled=bool(archive_targets),
        archive_target=", ".join(archive_targets),
        replication_enabled=bool(replication_specs),
        replication_target_cluster=cluster_display_name(target.text("name")),
        replication_target_cluster_id=target.text("id"),
    )


def map_object(raw: Any, ctx: MapContext) -> ObjectRecord:
    node = _Node(raw, "objects")
    key = node.require_key()
    sla = node.obj("slaDomain")
    cluster = node.obj("cluster")

    sla_id = sla.text("id")
    cluster_id = cluster.text("id")
    protection = node.text("protectionStatus")
    compliance = node.text("complianceStatus")
    role = replication_role(cluster_id, ctx.sla_domains.get(sla_id))
    last_snapshot = node.timestamp("lastSnapshot")
    object_type = node.text("objectType")

    return ObjectRecord(
        rsc_instance=ctx.instance_id,
        object_id=key,
        object=node.text("name"),
        object_type=object_type,
        location=node.text("location"),
        sla_domain=sla.text("name"),
        sla_domain_id=sla_id,
        protection_status=protection,
        compliance_status=compliance,
        archival_compliance_status=node.text("archivalComplianceStatus"),
        replication_compliance_status=node.text("replicationComplianceStatus"),
        cluster=cluster_display_name(cluster.text("name")),
        cluster_id=cluster_id,
        total_snapshots=node.integer("totalSnapshots"),
        missed_snapshots=node.integer("missedSnapshots"),
        last_snapshot_utc=last_snapshot,
        hours_since=hours_since(last_snapshot, ctx.now),
        local_storage_gb=bytes_to_gb(node.number("localStorage")),
        logical_gb=bytes_to_gb(node.number("logicalBytes")),
        replication_role=role,
        report_on_compliance=reports_on_compliance(protection, role, compliance),
        url=object_url(ctx.instance_id, object_type, key),
    )


def map_event(raw: Any, ctx: MapContext) -> EventRecord:
    node = _Node(raw, "events", key_field="activitySeriesId")
    key = node.require_key()

    latest = {}
    activities = node.items("activityConnection")
    if activities:
        latest = activities[0]
    activity = _Node(latest, "events")

    start = node.timestamp("startTime")
    updated = node.timestamp("lastUpdated")
    duration = None
    if start is not None and updated is not None:
        duration = round((updated - start).total_seconds() / 60.0, 1)
    message = activity.text("message")

    return EventRecord(
        rsc_instance=ctx.instance_id,
        event_id=key,
        object=node.text("objectName"),
        object_id=node.text("objectId"),
        object_type=node.text("objectType"),
        cluster=cluster_display_name(node.text("clusterName")),
        cluster_id=node.text("clusterUuid"),
        location=node.text("location"),
        event_type=node.text("lastActivityType"),
        status=node.text("lastActivityStatus"),
        severity=node.text("severity") or activity.text("severity"),
        message=message,
        start_utc=start,
        last_updated_utc=updated,
        duration_minutes=duration,
        is_log_backup="log backup" in message.lower(),
    )


def map_audit_log(raw: Any, ctx: MapContext) -> AuditLogRecord:
    node = _Node(raw, "audit_logs")
    return AuditLogRecord(
        rsc_instance=ctx.instance_id,
        audit_id=node.require_key(),
        time_utc=node.timestamp("time"),
        user_name=node.text("userName"),
        user_note=node.text("userNote"),
        message=node.text("message"),
        severity=node.text("severity"),
        status=node.text("status"),
        object=node.text("objectName"),
        object_id=node.text("objectId"),
        object_type=node.text("objectType"),
        cluster=cluster_display_name(node.text("clusterName")),
        cluster_id=node.text("clusterId"),
    )


def map_tag_assignments(raw: Any, ctx: MapContext) -> list[TagAssignmentRecord]:
    """One record per vSphere tag on the object; untagged objects yield none."""
    node = _Node(raw, "tag_assignments")
    object_id = node.require_key()
    cluster = node.obj("cluster")

    records: list[TagAssignmentRecord] = []
    category = _Node({}, "tag_assignments")
    for entry in node.items("vsphereTagPath"):
        item = _Node(entry, "tag_assignments", key_field="fid")
        kind = item.text("objectType")
        if kind == "VSPHERE_TAG_CATEGORY":
            category = item
        elif kind == "VSPHERE_TAG":
            tag_id = item.key or ""
            records.append(TagAssignmentRecord(
                rsc_instance=ctx.instance_id,
                tag_assignment_id=f"{object_id}:{tag_id}",
                tag=item.text("name"),
                tag_id=tag_id,
                tag_category=category.text("name"),
                tag_category_id=category.key or "",
                object=node.text("name"),
                object_id=object_id,
                object_type="VmwareVirtualMachine",
                cluster=cluster_display_name(cluster.text("name")),
                cluster_id=cluster.text("id"),
            ))
    return records


def map_snapshot(raw: Any, ctx: MapContext) -> SnapshotRecord:
    node = _Node(raw, "snapshots")
    key = node.require_key()
    workload = node.obj("snappableNew")
    sla = node.obj("slaDomain")
    cluster = node.obj("cluster")
    taken = node.timestamp("date")
    return SnapshotRecord(
        rsc_instance=ctx.instance_id,
        snapshot_id=key,
        object_id=workload.text("id") or node.text("snappableId"),
        object=workload.text("name"),
        object_type=workload.text("objectType"),
        date_utc=taken,
        expiration_utc=node.timestamp("expirationDate"),
        hours_since=hours_since(taken, ctx.now),
        is_on_demand=node.flag("isOnDemandSnapshot"),
        is_expired=node.flag("isExpired"),
        sla_domain=sla.text("name"),
        sla_domain_id=sla.text("id"),
        cluster=cluster_display_name(cluster.text("name")),
        cluster_id=cluster.text("id"),
    )


def map_live_mount(raw: Any, ctx: MapContext) -> LiveMountRecord:
    node = _Node(raw, "live_mounts")
    mounted = node.obj("mountedVm")
    source = node.obj("sourceVm")
    cluster = node.obj("cluster")
    mounted_at = node.timestamp("mountTimestamp")
    return LiveMountRecord(
        rsc_instance=ctx.instance_id,
        live_mount_id=node.require_key(),
        mounted_vm=mounted.text("name"),
        mounted_vm_id=mounted.text("id"),
        source_vm=source.text("name"),
        source_vm_id=source.text("id"),
        cluster=cluster_display_name(cluster.text("name")),
        cluster_id=cluster.text("id"),
        status=node.text("vmStatus"),
        is_ready=node.flag("isReady"),
        mount_utc=mounted_at,
        hours_mounted=hours_since(mounted_at, ctx.now),
    )
