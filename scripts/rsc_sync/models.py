"""Flat record types produced by the mappers and persisted by the sink.

Field names double as column names in the reporting tables. Every record
carries rsc_instance plus the entity's natural key.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Optional


@dataclass
class ClusterRecord:
    rsc_instance: str
    cluster_id: str
    cluster: str = ""
    status: str = ""
    version: str = ""
    cluster_type: str = ""
    location: str = ""
    connected_state: str = ""
    total_capacity_gb: float = 0.0
    used_capacity_gb: float = 0.0
    available_capacity_gb: float = 0.0
    last_connection_utc: Optional[datetime] = None


@dataclass
class SLADomainRecord:
    rsc_instance: str
    sla_domain_id: str
    sla_domain: str = ""
    description: str = ""
    object_types: str = ""
    protected_objects: int = 0
    frequency: str = ""
    retention_locked: bool = False
    archival_enabled: bool = False
    archive_target: str = ""
    replication_enabled: bool = False
    replication_target_cluster: str = ""
    replication_target_cluster_id: str = ""


@dataclass
class ObjectRecord:
    rsc_instance: str
    object_id: str
    object: str = ""
    object_type: str = ""
    location: str = ""
    sla_domain: str = ""
    sla_domain_id: str = ""
    protection_status: str = ""
    compliance_status: str = ""
    archival_compliance_status: str = ""
    replication_compliance_status: str = ""
    cluster: str = ""
    cluster_id: str = ""
    total_snapshots: int = 0
    missed_snapshots: int = 0
    last_snapshot_utc: Optional[datetime] = None
    hours_since: Optional[float] = None
    local_storage_gb: float = 0.0
    logical_gb: float = 0.0
    replication_role: str = "N/A"
    report_on_compliance: bool = False
    url: str = ""


@dataclass
class EventRecord:
    rsc_instance: str
    event_id: str
    object: str = ""
    object_id: str = ""
    object_type: str = ""
    cluster: str = ""
    cluster_id: str = ""
    location: str = ""
    event_type: str = ""
    status: str = ""
    severity: str = ""
    message: str = ""
    start_utc: Optional[datetime] = None
    last_updated_utc: Optional[datetime] = None
    duration_minutes: Optional[float] = None
    is_log_backup: bool = False


@dataclass
class AuditLogRecord:
    rsc_instance: str
    audit_id: str
    time_utc: Optional[datetime] = None
    user_name: str = ""
    user_note: str = ""
    message: str = ""
    severity: str = ""
    status: str = ""
    object: str = ""
    object_id: str = ""
    object_type: str = ""
    cluster: str = ""
    cluster_id: str = ""


@dataclass
class TagAssignmentRecord:
    rsc_instance: str
    tag_assignment_id: str
    tag: str = ""
    tag_id: str = ""
    tag_category: str = ""
    tag_category_id: str = ""
    object: str = ""
    object_id: str = ""
    object_type: str = ""
    cluster: str = ""
    cluster_id: str = ""


@dataclass
class SnapshotRecord:
    rsc_instance: str
    snapshot_id: str
    object_id: str = ""
    object: str = ""
    object_type: str = ""
    date_utc: Optional[datetime] = None
    expiration_utc: Optional[datetime] = None
    hours_since: Optional[float] = None
    is_on_demand: bool = False
    is_expired: bool = False
    sla_domain: str = ""
    sla_domain_id: str = ""
    cluster: str = ""
    cluster_id: str = ""


@dataclass
class LiveMountRecord:
    rsc_instance: str
    live_mount_id: str
    mounted_vm: str = ""
    mounted_vm_id: str = ""
    source_vm: str = ""
    source_vm_id: str = ""
    cluster: str = ""
    cluster_id: str = ""
    status: str = ""
    is_ready: bool = False
    mount_utc: Optional[datetime] = None
    hours_mounted: Optional[float] = None


@dataclass
class ObjectComplianceRecord:
    rsc_instance: str
    object_id: str
    object: str = ""
    object_type: str = ""
    location: str = ""
    sla_domain: str = ""
    sla_domain_id: str = ""
    cluster: str = ""
    cluster_id: str = ""
    window_start_utc: Optional[datetime] = None
    days_reported: int = 0
    days_backed_up: int = 0
    strikes: int = 0
    compliance_pct: float = 0.0
    last_24h_backup: bool = False
    last_24h_strike: bool = False
    last_snapshot_utc: Optional[datetime] = None
    hours_since: Optional[float] = None
    complete: bool = True
    url: str = ""


@dataclass
class ObjectComplianceDayRecord:
    rsc_instance: str
    object_id: str
    window_start_utc: datetime
    window_end_utc: datetime
    day: int = 0
    backed_up: bool = False
    snapshot_utc: Optional[datetime] = None


def record_columns(record_type: type) -> list[str]:
    return [f.name for f in fields(record_type)]


def record_row(record: Any) -> tuple:
    return tuple(getattr(record, f.name) for f in fields(record))


def record_key(record: Any, natural_key: list[str]) -> tuple:
    return tuple(getattr(record, name) for name in natural_key)


def record_dict(record: Any) -> dict[str, Any]:
    return asdict(record)
