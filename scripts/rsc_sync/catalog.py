"""Entity catalog: one row per reportable RSC entity type.

Each entry names the GraphQL document, where the connection sits in the
response, the mapper that flattens a node and the table the records land
in. The generic pipeline in pipeline.py is driven entirely by these rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from scripts.rsc_sync import mappers, queries
from scripts.rsc_sync.graphql_client import GraphQLRequest
from scripts.rsc_sync.models import (
    AuditLogRecord,
    ClusterRecord,
    EventRecord,
    LiveMountRecord,
    ObjectComplianceDayRecord,
    ObjectComplianceRecord,
    ObjectRecord,
    SLADomainRecord,
    SnapshotRecord,
    TagAssignmentRecord,
)


@dataclass(frozen=True)
class EntitySpec:
    name: str
    record_type: type
    table: str
    natural_key: tuple[str, ...]
    operation_name: str = ""
    query: str = ""
    node_path: tuple[str, ...] = ()
    mapper: Optional[Callable[[Any, mappers.MapContext], Any]] = None
    variables: dict[str, Any] = field(default_factory=dict)
    # Mapper returns a list of records per node instead of one
    multi: bool = False
    # A complete sync flags stored rows the API no longer reports
    mark_relics: bool = True
    # Needs SLA domain / cluster lookups in the MapContext
    needs_lookups: bool = False
    # Requires caller-supplied variables (e.g. workloadId) and is not synced in bulk
    per_object: bool = False
    # Produced by pipeline code rather than a single connection query
    derived: bool = False

    def request(self, page_size: int, **variables: Any) -> GraphQLRequest:
        merged = dict(self.variables)
        merged["first"] = page_size
        merged.update({k: v for k, v in variables.items() if v is not None})
        return GraphQLRequest(self.operation_name, self.query, merged)


def _key(*names: str) -> tuple[str, ...]:
    return ("rsc_instance",) + names


CATALOG: dict[str, EntitySpec] = {
    spec.name: spec
    for spec in (
        EntitySpec(
            name="clusters",
            record_type=ClusterRecord,
            table="rsc_clusters",
            natural_key=_key("cluster_id"),
            operation_name="ClusterListQuery",
            query=queries.CLUSTER_LIST_QUERY,
            node_path=("clusterConnection",),
            mapper=mappers.map_cluster,
            variables={"sortBy": "ClusterName", "sortOrder": "ASC"},
        ),
        EntitySpec(
            name="sla_domains",
            record_type=SLADomainRecord,
            table="rsc_sla_domains",
            natural_key=_key("sla_domain_id"),
            operation_name="SLADomainListQuery",
            query=queries.SLA_DOMAIN_LIST_QUERY,
            node_path=("slaDomains",),
            mapper=mappers.map_sla_domain,
            variables={"sortBy": "NAME", "sortOrder": "ASC"},
        ),
        EntitySpec(
            name="objects",
            record_type=ObjectRecord,
            table="rsc_objects",
            natural_key=_key("object_id"),
            operation_name="snappableConnection",
            query=queries.OBJECT_LIST_QUERY,
            node_path=("snappableConnection",),
            mapper=mappers.map_object,
            needs_lookups=True,
        ),
        EntitySpec(
            name="events",
            record_type=EventRecord,
            table="rsc_events",
            natural_key=_key("event_id"),
            operation_name="EventSeriesListQuery",
            query=queries.EVENT_SERIES_LIST_QUERY,
            node_path=("activitySeriesConnection",),
            mapper=mappers.map_event,
            variables={"sortBy": "LAST_UPDATED", "sortOrder": "DESC"},
            # Events are fetched for a time window, so absence is not a signal
            mark_relics=False,
        ),
        EntitySpec(
            name="audit_logs",
            record_type=AuditLogRecord,
            table="rsc_audit_logs",
            natural_key=_key("audit_id"),
            operation_name="AuditLogListQuery",
            query=queries.AUDIT_LOG_LIST_QUERY,
            node_path=("userAuditConnection",),
            mapper=mappers.map_audit_log,
            variables={"sortBy": "TIME", "sortOrder": "DESC"},
            mark_relics=False,
        ),
        EntitySpec(
            name="tag_assignments",
            record_type=TagAssignmentRecord,
            table="rsc_tag_assignments",
            natural_key=_key("tag_assignment_id"),
            operation_name="TagAssignmentListQuery",
            query=queries.TAG_ASSIGNMENT_LIST_QUERY,
            node_path=("vSphereVmNewConnection",),
            mapper=mappers.map_tag_assignments,
            multi=True,
        ),
        EntitySpec(
            name="live_mounts",
            record_type=LiveMountRecord,
            table="rsc_live_mounts",
            natural_key=_key("live_mount_id"),
            operation_name="vSphereLiveMountListQuery",
            query=queries.LIVE_MOUNT_LIST_QUERY,
            node_path=("vSphereLiveMounts",),
            mapper=mappers.map_live_mount,
        ),
        EntitySpec(
            name="snapshots",
            record_type=SnapshotRecord,
            table="rsc_snapshots",
            natural_key=_key("snapshot_id"),
            operation_name="SnapshotOfASnappableConnection",
            query=queries.SNAPSHOT_LIST_QUERY,
            node_path=("snapshotOfASnappableConnection",),
            mapper=mappers.map_snapshot,
            variables={"sortBy": "CREATION_TIME", "sortOrder": "DESC"},
            mark_relics=False,
            per_object=True,
        ),
        EntitySpec(
            name="object_compliance",
            record_type=ObjectComplianceRecord,
            table="rsc_object_compliance",
            natural_key=_key("object_id"),
            needs_lookups=True,
            derived=True,
        ),
        EntitySpec(
            name="object_compliance_days",
            record_type=ObjectComplianceDayRecord,
            table="rsc_object_compliance_days",
            natural_key=_key("object_id", "window_start_utc"),
            mark_relics=False,
            needs_lookups=True,
            derived=True,
        ),
    )
}

# Entities a plain `sync` covers, in dependency order.
DEFAULT_SYNC_ENTITIES = (
    "clusters",
    "sla_domains",
    "objects",
    "tag_assignments",
    "live_mounts",
    "events",
    "audit_logs",
)


def get_entity(name: str) -> EntitySpec:
    try:
        return CATALOG[name]
    except KeyError:
        raise KeyError(f"Unknown entity {name!r}; choose from {', '.join(sorted(CATALOG))}") from None
