"""Tests for node -> record mappers.

Fixtures under tests/fixtures hold GraphQL payloads shaped like real RSC
responses, including the nulls RSC sends for optional fields.
"""

from datetime import datetime, timezone

import pytest

from scripts.rsc_sync import mappers
from scripts.rsc_sync.errors import MappingError
from scripts.rsc_sync.mappers import MapContext, replication_role, reports_on_compliance
from scripts.rsc_sync.models import SLADomainRecord

from tests.conftest import INSTANCE, NOW, load_fixture


def _nodes(fixture, key):
    connection = load_fixture(fixture)["data"][key]
    if "nodes" in connection:
        return connection["nodes"]
    return [e["node"] for e in connection["edges"]]


def _ctx_with_slas():
    slas = [mappers.map_sla_domain(n, MapContext(INSTANCE, NOW)) for n in _nodes("sla_domains.json", "slaDomains")]
    return MapContext(INSTANCE, NOW, sla_domains={s.sla_domain_id: s for s in slas})


# ---------------------------------------------------------------------------
# Clusters and SLA domains
# ---------------------------------------------------------------------------

def test_map_cluster(ctx):
    record = mappers.map_cluster(_nodes("clusters.json", "clusterConnection")[0], ctx)
    assert record.rsc_instance == INSTANCE
    assert record.cluster_id == "cl-1"
    assert record.location == "Ashburn, VA"
    assert record.connected_state == "Connected"
    assert record.total_capacity_gb == 100000.0
    assert record.used_capacity_gb == 25000.0
    assert record.last_connection_utc == datetime(2024, 1, 10, 19, 55, tzinfo=timezone.utc)


def test_polaris_cluster_with_null_nested_objects(ctx):
    record = mappers.map_cluster(_nodes("clusters.json", "clusterConnection")[1], ctx)
    assert record.cluster == "RSC-Native"
    assert record.location == ""
    assert record.total_capacity_gb == 0.0
    assert record.last_connection_utc is None


def test_map_sla_domain(ctx):
    gold, bronze = [mappers.map_sla_domain(n, ctx) for n in _nodes("sla_domains.json", "slaDomains")]
    assert gold.frequency == "4 HOURS"
    assert gold.archival_enabled
    assert gold.archive_target == "s3-archive"
    assert gold.replication_enabled
    assert gold.replication_target_cluster_id == "cl-2"
    assert gold.object_types == "VSPHERE_OBJECT_TYPE, MSSQL_OBJECT_TYPE"

    assert bronze.frequency == "1 DAYS"
    assert not bronze.archival_enabled
    assert not bronze.replication_enabled
    assert bronze.protected_objects == 0


# ---------------------------------------------------------------------------
# Objects
# ---------------------------------------------------------------------------

def test_map_object_source_role_and_url():
    ctx = _ctx_with_slas()
    record = mappers.map_object(_nodes("objects_page1.json", "snappableConnection")[0], ctx)
    assert record.object_id == "vm-001"
    assert record.replication_role == "Source"
    assert record.report_on_compliance
    assert record.hours_since == 1.5
    assert record.local_storage_gb == 5.0
    assert record.url == f"https://{INSTANCE}/inventory_hierarchy/vsphere_vm/vm-001/overview"


def test_map_object_on_replication_target_is_not_reported():
    ctx = _ctx_with_slas()
    record = mappers.map_object(_nodes("objects_page1.json", "snappableConnection")[1], ctx)
    assert record.replication_role == "Target"
    assert not record.report_on_compliance
    assert record.last_snapshot_utc is None
    assert record.hours_since is None
    assert record.local_storage_gb == 0.0
    assert record.logical_gb == 1.5


def test_map_object_tolerates_null_sla(ctx):
    record = mappers.map_object(_nodes("objects_page2.json", "snappableConnection")[0], ctx)
    assert record.sla_domain == ""
    assert record.sla_domain_id == ""
    assert record.replication_role == "N/A"
    assert not record.report_on_compliance
    assert record.total_snapshots == 0


def test_object_with_missing_optional_fields(ctx):
    record = mappers.map_object({"id": "x-1"}, ctx)
    assert record.object_id == "x-1"
    assert record.object == ""
    assert record.last_snapshot_utc is None


# ---------------------------------------------------------------------------
# Events, tags, snapshots, live mounts, audit
# ---------------------------------------------------------------------------

def test_map_event_flags_log_backup_and_duration(ctx):
    log_backup, failure = [mappers.map_event(n, ctx) for n in _nodes("events.json", "activitySeriesConnection")]
    assert log_backup.event_id == "evt-1"
    assert log_backup.is_log_backup
    assert log_backup.duration_minutes == 30.0
    assert log_backup.message == "Completed log backup of orders"

    assert not failure.is_log_backup
    assert failure.cluster == "RSC-Native"
    assert failure.duration_minutes is None
    assert failure.severity == "Critical"


def test_map_tag_assignments_pairs_tags_with_categories(ctx):
    tagged, untagged = _nodes("tag_assignments.json", "vSphereVmNewConnection")
    records = mappers.map_tag_assignments(tagged, ctx)
    assert [(r.tag_category, r.tag) for r in records] == [
        ("Environment", "Production"),
        ("Owner", "web-team"),
    ]
    assert records[0].tag_assignment_id == "vm-001:tag-prod"
    assert records[0].cluster_id == "cl-1"
    assert mappers.map_tag_assignments(untagged, ctx) == []


def test_map_snapshot_with_epoch_date_and_fallback_id(ctx):
    latest, older = [mappers.map_snapshot(n, ctx) for n in _nodes("snapshots_vm001.json", "snapshotOfASnappableConnection")]
    assert latest.object_id == "vm-001"
    assert latest.date_utc == datetime(2024, 1, 10, 19, 0, tzinfo=timezone.utc)
    assert older.object_id == "vm-001"
    assert older.date_utc == datetime(2024, 1, 8, 19, 0, tzinfo=timezone.utc)
    assert older.is_on_demand


def test_map_live_mount(ctx):
    record = mappers.map_live_mount(
        {
            "id": "lm-1",
            "mountedVm": {"id": "vm-9", "name": "web-01-lm"},
            "sourceVm": {"id": "vm-001", "name": "web-01"},
            "cluster": {"id": "cl-1", "name": "cdm-east"},
            "vmStatus": "POWEREDON",
            "isReady": True,
            "mountTimestamp": "2024-01-10T18:30:00Z",
        },
        ctx,
    )
    assert record.live_mount_id == "lm-1"
    assert record.is_ready
    assert record.hours_mounted == 2.0


def test_map_audit_log(ctx):
    record = mappers.map_audit_log(
        {"id": "aud-1", "time": "2024-01-10T12:00:00Z", "userName": "alice", "message": "Logged in"},
        ctx,
    )
    assert record.audit_id == "aud-1"
    assert record.user_name == "alice"
    assert record.cluster == ""


# ---------------------------------------------------------------------------
# Shape errors
# ---------------------------------------------------------------------------

def test_missing_natural_key_raises(ctx):
    with pytest.raises(MappingError):
        mappers.map_object({"name": "no id"}, ctx)


def test_non_object_node_raises(ctx):
    with pytest.raises(MappingError):
        mappers.map_cluster(["not", "a", "node"], ctx)


def test_wrong_nested_type_raises_with_key(ctx):
    with pytest.raises(MappingError) as info:
        mappers.map_object({"id": "vm-1", "slaDomain": "Gold"}, ctx)
    assert info.value.natural_key == "vm-1"


def test_bad_timestamp_raises(ctx):
    with pytest.raises(MappingError):
        mappers.map_object({"id": "vm-1", "lastSnapshot": "not a date"}, ctx)


def test_non_numeric_storage_raises_with_key(ctx):
    with pytest.raises(MappingError) as info:
        mappers.map_object({"id": "vm-2", "localStorage": "n/a"}, ctx)
    assert info.value.natural_key == "vm-2"
    assert mappers.map_object({"id": "vm-3", "localStorage": "2000000000"}, ctx).local_storage_gb == 2.0


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def test_replication_role():
    sla = SLADomainRecord(
        rsc_instance=INSTANCE, sla_domain_id="s",
        replication_enabled=True, replication_target_cluster_id="cl-2",
    )
    assert replication_role("cl-2", sla) == "Target"
    assert replication_role("cl-1", sla) == "Source"
    assert replication_role("cl-1", None) == "N/A"
    assert replication_role("cl-1", SLADomainRecord(rsc_instance=INSTANCE, sla_domain_id="t")) == "N/A"


@pytest.mark.parametrize("protection,role,compliance,expected", [
    ("Protected", "Source", "IN_COMPLIANCE", True),
    ("Protected", "N/A", "OUT_OF_COMPLIANCE", True),
    ("Protected", "Target", "IN_COMPLIANCE", False),
    ("Unprotected", "N/A", "IN_COMPLIANCE", False),
    ("Protected", "N/A", "NOT_APPLICABLE", False),
    ("Protected", "N/A", "EMPTY", False),
])
def test_reports_on_compliance(protection, role, compliance, expected):
    assert reports_on_compliance(protection, role, compliance) is expected
