"""Tests for sync.SyncRunner with a mocked pipeline and database."""

from unittest.mock import MagicMock

import pytest

from scripts.rsc_sync.db import UpsertResult
from scripts.rsc_sync.errors import HTTPError, SinkError
from scripts.rsc_sync.mappers import MapContext
from scripts.rsc_sync.models import ClusterRecord, EventRecord, ObjectRecord, SLADomainRecord
from scripts.rsc_sync.pipeline import EntityResult, Pipeline
from scripts.rsc_sync.sync import SyncOptions, SyncRunner

from tests.conftest import INSTANCE, NOW, load_fixture


def _lookups():
    return {
        "clusters": EntityResult("clusters", records=[ClusterRecord(INSTANCE, "cl-1")], fetched=1, pages=1),
        "sla_domains": EntityResult("sla_domains", records=[SLADomainRecord(INSTANCE, "sla-1")], fetched=1, pages=1),
    }


def _objects(complete=True):
    records = [
        ObjectRecord(INSTANCE, "vm-1", object_type="VmwareVirtualMachine"),
        ObjectRecord(INSTANCE, "db-1", object_type="Mssql"),
    ]
    return EntityResult(
        "objects", records=records, fetched=2, pages=1, complete=complete,
        error=None if complete else HTTPError(503),
    )


def _events():
    records = [
        EventRecord(INSTANCE, "e-1", message="Completed log backup", is_log_backup=True),
        EventRecord(INSTANCE, "e-2", message="Snapshot complete"),
    ]
    return EntityResult("events", records=records, fetched=2, pages=1)


@pytest.fixture
def pipeline():
    pipeline = MagicMock()
    pipeline.instance_id = INSTANCE
    pipeline.build_context.return_value = (MapContext(INSTANCE, NOW), _lookups())
    pipeline.fetch_many.side_effect = lambda names, ctx, variables, **kw: {
        name: {"objects": _objects, "events": _events}[name]() for name in names
    }
    return pipeline


@pytest.fixture
def db():
    db = MagicMock()
    db.record_run_start.side_effect = lambda instance_id, entity_type, metadata: f"run-{entity_type}"
    db.upsert.side_effect = lambda table, key, records, drop_existing=False, scope=None: UpsertResult(
        inserted=len(records)
    )
    db.mark_missing_as_relic.return_value = 0
    return db


def _report(report, entity):
    return next(e for e in report.entities if e.entity == entity)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

def test_sync_writes_each_entity_and_tracks_runs(pipeline, db):
    options = SyncOptions(entities=("clusters", "sla_domains", "objects", "events"))
    report = SyncRunner(pipeline, db, options).run()

    assert [e.entity for e in report.entities] == ["clusters", "sla_domains", "objects", "events"]
    assert report.ok
    assert _report(report, "objects").inserted == 2
    assert db.record_run_start.call_count == 4
    assert db.record_run_end.call_count == 4
    assert report.totals()["fetched"] == 6

    # Lookups are written from build_context, not fetched twice
    fetched = pipeline.fetch_many.call_args[0][0]
    assert fetched == ["objects", "events"]


def test_relics_marked_for_complete_inventory_only(pipeline, db):
    db.mark_missing_as_relic.return_value = 4
    report = SyncRunner(pipeline, db, SyncOptions(entities=("objects", "events"))).run()

    db.mark_missing_as_relic.assert_called_once()
    table, key, present = db.mark_missing_as_relic.call_args[0]
    assert table == "rsc_objects"
    assert present == [(INSTANCE, "vm-1"), (INSTANCE, "db-1")]
    assert db.mark_missing_as_relic.call_args[1]["scope"] == {"rsc_instance": INSTANCE}
    assert _report(report, "objects").relics == 4


def test_event_window_variables_passed(pipeline, db):
    SyncRunner(pipeline, db, SyncOptions(entities=("events",), event_hours=6)).run()
    variables = pipeline.fetch_many.call_args[0][2]
    assert "lastUpdatedTimeGt" in variables["events"]["filters"]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

def test_exclude_log_backups(pipeline, db):
    report = SyncRunner(pipeline, db, SyncOptions(entities=("events",), exclude_log_backups=True)).run()
    records = db.upsert.call_args[0][2]
    assert [r.event_id for r in records] == ["e-2"]
    assert _report(report, "events").skipped == 1


def test_excluded_object_types_disable_relic_marking(pipeline, db):
    options = SyncOptions(entities=("objects",), exclude_object_types=("mssql",))
    report = SyncRunner(pipeline, db, options).run()
    assert [r.object_id for r in db.upsert.call_args[0][2]] == ["vm-1"]
    db.mark_missing_as_relic.assert_not_called()
    assert _report(report, "objects").skipped == 1


def test_no_relics_option(pipeline, db):
    SyncRunner(pipeline, db, SyncOptions(entities=("objects",), mark_relics=False)).run()
    db.mark_missing_as_relic.assert_not_called()


def test_drop_existing_passed_to_sink(pipeline, db):
    SyncRunner(pipeline, db, SyncOptions(entities=("objects",), drop_existing=True)).run()
    assert db.upsert.call_args[1]["drop_existing"] is True
    db.mark_missing_as_relic.assert_not_called()


def test_per_object_entity_rejected(pipeline, db):
    with pytest.raises(ValueError):
        SyncRunner(pipeline, db, SyncOptions(entities=("snapshots",))).run()
    pipeline.build_context.assert_not_called()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_partial_fetch_upserts_but_skips_relics(pipeline, db):
    pipeline.fetch_many.side_effect = lambda names, ctx, variables, **kw: {"objects": _objects(complete=False)}
    report = SyncRunner(pipeline, db, SyncOptions(entities=("objects",))).run()

    entity = _report(report, "objects")
    assert entity.status == "PARTIAL"
    assert entity.inserted == 2
    assert "HTTP 503" in entity.error
    db.mark_missing_as_relic.assert_not_called()
    assert db.record_run_end.call_args[1]["status"] == "PARTIAL"
    assert not report.ok


def test_sink_error_fails_only_that_entity(pipeline, db):
    def upsert(table, key, records, drop_existing=False, scope=None):
        if table == "rsc_objects":
            raise SinkError("deadlock detected")
        return UpsertResult(inserted=len(records))

    db.upsert.side_effect = upsert
    report = SyncRunner(pipeline, db, SyncOptions(entities=("objects", "events"))).run()

    assert _report(report, "objects").status == "FAILED"
    assert _report(report, "objects").error == "deadlock detected"
    assert _report(report, "events").status == "SUCCESS"
    statuses = [c[1]["status"] for c in db.record_run_end.call_args_list]
    assert statuses == ["FAILED", "SUCCESS"]


def test_compliance_entities_use_fetched_objects(pipeline, db):
    summary = EntityResult("object_compliance", records=[], fetched=2)
    days = EntityResult("object_compliance_days", records=[])
    pipeline.fetch_object_compliance.return_value = (summary, days)

    options = SyncOptions(entities=("objects", "object_compliance", "object_compliance_days"), compliance_days=3)
    report = SyncRunner(pipeline, db, options).run()

    kwargs = pipeline.fetch_object_compliance.call_args[1]
    assert [o.object_id for o in kwargs["objects"]] == ["vm-1", "db-1"]
    assert pipeline.fetch_object_compliance.call_args[0][2] == 3
    assert [e.entity for e in report.entities] == ["objects", "object_compliance", "object_compliance_days"]
    # object_compliance_days keeps history, so never marks relics
    tables = [c[0][0] for c in db.mark_missing_as_relic.call_args_list]
    assert "rsc_object_compliance_days" not in tables


def test_missing_connection_fails_without_relics(db):
    responses = {
        "ClusterListQuery": {"data": {"clusterConnectionV2": {"nodes": [], "pageInfo": {"hasNextPage": False}}}},
        "SLADomainListQuery": load_fixture("sla_domains.json"),
    }
    client = MagicMock()
    client.session.instance_id = INSTANCE
    client.execute.side_effect = lambda request: responses[request.operation_name]

    report = SyncRunner(Pipeline(client), db, SyncOptions(entities=("clusters",))).run()

    entity = _report(report, "clusters")
    assert entity.status == "FAILED"
    assert "clusterConnection" in entity.error
    db.mark_missing_as_relic.assert_not_called()


def test_lookups_skipped_when_no_entity_needs_them(pipeline, db):
    SyncRunner(pipeline, db, SyncOptions(entities=("events",))).run()
    pipeline.build_context.assert_not_called()
    assert pipeline.fetch_many.call_args[0][1].instance_id == INSTANCE
