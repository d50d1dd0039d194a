"""Tests for timestamp and unit conversions."""

from datetime import datetime, timezone

import pytest

from scripts.rsc_sync.convert import (
    bytes_to_gb,
    cluster_display_name,
    format_utc,
    from_epoch_ms,
    hours_since,
    object_url,
    to_epoch_ms,
    to_utc,
)

UTC = timezone.utc


# ---------------------------------------------------------------------------
# Epoch round trip
# ---------------------------------------------------------------------------

def test_epoch_zero_round_trip():
    dt = from_epoch_ms(0)
    assert dt == datetime(1970, 1, 1, tzinfo=UTC)
    assert to_epoch_ms(dt) == 0


def test_typical_value_round_trip():
    ms = 1704916800123  # 2024-01-10T20:00:00.123Z
    dt = from_epoch_ms(ms)
    assert dt == datetime(2024, 1, 10, 20, 0, 0, 123000, tzinfo=UTC)
    assert to_epoch_ms(dt) == ms


def test_naive_datetime_treated_as_utc():
    assert to_epoch_ms(datetime(1970, 1, 1, 0, 0, 1)) == 1000


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw", [
    "2024-01-10T20:00:00.000Z",
    "2024-01-10T20:00:00Z",
    "2024-01-10T21:00:00+01:00",
    1704916800000,
    "1704916800000",
])
def test_to_utc_accepts_rsc_formats(raw):
    assert to_utc(raw) == datetime(2024, 1, 10, 20, 0, tzinfo=UTC)


@pytest.mark.parametrize("raw", [None, ""])
def test_to_utc_missing_is_none_not_epoch(raw):
    assert to_utc(raw) is None


@pytest.mark.parametrize("raw", ["yesterday", True, {"t": 1}])
def test_to_utc_rejects_garbage(raw):
    with pytest.raises(ValueError):
        to_utc(raw)


def test_format_utc_has_millis_and_z():
    dt = datetime(2024, 1, 10, 20, 0, 0, 123456, tzinfo=UTC)
    assert format_utc(dt) == "2024-01-10T20:00:00.123Z"
    assert format_utc(None) is None


# ---------------------------------------------------------------------------
# Derived fields
# ---------------------------------------------------------------------------

def test_hours_since_rounds_to_tenth():
    now = datetime(2024, 1, 10, 20, 0, tzinfo=UTC)
    assert hours_since(datetime(2024, 1, 10, 17, 40, tzinfo=UTC), now) == 2.3
    assert hours_since(None, now) is None


def test_bytes_to_gb_uses_decimal_gigabytes():
    assert bytes_to_gb(5_000_000_000) == 5.0
    assert bytes_to_gb("1500000000") == 1.5
    assert bytes_to_gb(None) == 0.0


def test_polaris_cluster_renamed():
    assert cluster_display_name("Polaris") == "RSC-Native"
    assert cluster_display_name("cdm-east") == "cdm-east"
    assert cluster_display_name(None) == ""


def test_object_url():
    assert object_url("acme.my.rubrik.com", "VmwareVirtualMachine", "vm-1") == (
        "https://acme.my.rubrik.com/inventory_hierarchy/vsphere_vm/vm-1/overview"
    )
    assert object_url("acme.my.rubrik.com", "Unknown", "x").endswith("/object/x/overview")
    assert object_url("acme.my.rubrik.com", "Mssql", "") == ""
