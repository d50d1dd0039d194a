"""Unit conversions and small derived-field helpers used by the mappers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

POLARIS_CLUSTER_NAME = "Polaris"
RSC_NATIVE_CLUSTER_NAME = "RSC-Native"

BYTES_PER_GB = 1000 ** 3

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Object type -> inventory path segment used by the RSC web UI.
_OBJECT_URL_SEGMENTS = {
    "VmwareVirtualMachine": "vsphere_vm",
    "Mssql": "mssql/database",
    "OracleDatabase": "oracle/database",
    "LinuxFileset": "fileset/linux",
    "WindowsFileset": "fileset/windows",
    "ShareFileset": "fileset/nas",
    "HypervVirtualMachine": "hyperv_vm",
    "NutanixVirtualMachine": "nutanix_vm",
    "AzureNativeVm": "azure_vm",
    "Ec2Instance": "aws_ec2",
    "GcpNativeGCEInstance": "gcp_gce",
    "O365Mailbox": "o365/mailbox",
    "O365Onedrive": "o365/onedrive",
    "ManagedVolume": "managed_volume",
}


def from_epoch_ms(value: int | float) -> datetime:
    """UNIX milliseconds -> aware UTC datetime."""
    return _EPOCH + timedelta(milliseconds=value)


def to_epoch_ms(value: datetime) -> int:
    """Aware datetime -> UNIX milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def to_utc(value: Any) -> Optional[datetime]:
    """Parse an RSC timestamp into an aware UTC datetime.

    Accepts UNIX milliseconds (int, float or numeric string) and ISO 8601
    strings. None and empty strings map to None, never to epoch zero.
    Raises ValueError for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return from_epoch_ms(value)
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return from_epoch_ms(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ValueError(f"not a timestamp: {value!r}")


def format_utc(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 with millisecond precision and a Z suffix."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def hours_since(value: Optional[datetime], now: datetime) -> Optional[float]:
    if value is None:
        return None
    return round((now - value).total_seconds() / 3600.0, 1)


def bytes_to_gb(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    return round(float(value) / BYTES_PER_GB, 2)


def cluster_display_name(name: Optional[str]) -> str:
    """RSC reports its own cloud-native control plane as "Polaris"."""
    if not name:
        return ""
    return RSC_NATIVE_CLUSTER_NAME if name == POLARIS_CLUSTER_NAME else name


def object_url(instance_id: str, object_type: str, object_id: str) -> str:
    if not instance_id or not object_id:
        return ""
    segment = _OBJECT_URL_SEGMENTS.get(object_type, "object")
    return f"https://{instance_id}/inventory_hierarchy/{segment}/{object_id}/overview"
