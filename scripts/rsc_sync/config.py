"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables (local dev, .env files)
  - RSC service account JSON files (RSC_SERVICE_ACCOUNT_FILE)
  - AWS Secrets Manager (aws-secret://name#key)
  - GCP Secret Manager (gcp-secret://name)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from scripts.rsc_sync.secrets import (
    load_service_account_file,
    resolve_database_url,
    resolve_secret,
)


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    min_connections: int = 1
    max_connections: int = 10


@dataclass(frozen=True)
class RscConfig:
    client_id: str
    client_secret: str
    access_token_uri: str

    @property
    def base_url(self) -> str:
        """https://host/api, derived from the token URI."""
        parsed = urlparse(self.access_token_uri)
        return f"{parsed.scheme or 'https'}://{parsed.netloc}/api"

    @property
    def instance_id(self) -> str:
        return urlparse(self.access_token_uri).netloc


@dataclass(frozen=True)
class FetchConfig:
    page_size: int = 500
    max_pages: int = 1000
    workers: int = 4
    max_concurrent_requests: int = 4
    requests_per_second: float = 5.0
    request_timeout: float = 60.0
    max_retries: int = 3
    verify_tls: bool = True


@dataclass(frozen=True)
class ComplianceConfig:
    window_hour: int = 20
    window_minute: int = 0
    days: int = 7


@dataclass(frozen=True)
class SchedulerConfig:
    inventory_interval_min: int = 60
    events_interval_min: int = 15
    compliance_interval_hours: int = 24
    misfire_grace_time: int = 300
    max_retries: int = 3


@dataclass(frozen=True)
class SyncConfig:
    database: DatabaseConfig
    rsc: Optional[RscConfig] = None
    fetch: FetchConfig = field(default_factory=FetchConfig)
    compliance: ComplianceConfig = field(default_factory=ComplianceConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    event_hours: int = 24


def load_rsc_config(credentials_file: Optional[str] = None) -> Optional[RscConfig]:
    """Resolve RSC client credentials from a service account file or env vars.

    Returns None when nothing is configured so read-only commands such as
    ``status`` can still run.
    """
    path = credentials_file or os.environ.get("RSC_SERVICE_ACCOUNT_FILE")
    if path:
        account = load_service_account_file(path)
        return RscConfig(
            client_id=account["client_id"],
            client_secret=account["client_secret"],
            access_token_uri=account["access_token_uri"],
        )

    client_id = os.environ.get("RSC_CLIENT_ID", "")
    secret_raw = os.environ.get("RSC_CLIENT_SECRET", "")
    token_uri = os.environ.get("RSC_ACCESS_TOKEN_URI", "")
    if not (client_id and secret_raw and token_uri):
        return None
    return RscConfig(
        client_id=client_id,
        client_secret=resolve_secret(secret_raw),
        access_token_uri=token_uri,
    )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(credentials_file: Optional[str] = None) -> SyncConfig:
    """Load configuration from environment variables.

    In cloud environments, secrets are resolved via AWS Secrets Manager or
    GCP Secret Manager. Locally, plain env vars or .env files are used.
    """
    load_dotenv()

    database = DatabaseConfig(
        url=resolve_database_url(),
        min_connections=int(os.environ.get("DB_MIN_CONNECTIONS", "1")),
        max_connections=int(os.environ.get("DB_MAX_CONNECTIONS", "10")),
    )

    fetch = FetchConfig(
        page_size=int(os.environ.get("RSC_PAGE_SIZE", "500")),
        max_pages=int(os.environ.get("RSC_MAX_PAGES", "1000")),
        workers=int(os.environ.get("RSC_WORKERS", "4")),
        max_concurrent_requests=int(os.environ.get("RSC_MAX_CONCURRENT_REQUESTS", "4")),
        requests_per_second=float(os.environ.get("RSC_REQUESTS_PER_SECOND", "5")),
        request_timeout=float(os.environ.get("RSC_REQUEST_TIMEOUT", "60")),
        max_retries=int(os.environ.get("RSC_MAX_RETRIES", "3")),
        verify_tls=_env_bool("RSC_VERIFY_TLS", True),
    )

    compliance = ComplianceConfig(
        window_hour=int(os.environ.get("COMPLIANCE_WINDOW_HOUR", "20")),
        window_minute=int(os.environ.get("COMPLIANCE_WINDOW_MINUTE", "0")),
        days=int(os.environ.get("COMPLIANCE_DAYS", "7")),
    )
    if not 0 <= compliance.window_hour <= 23 or not 0 <= compliance.window_minute <= 59:
        raise ValueError("COMPLIANCE_WINDOW_HOUR/MINUTE out of range")

    scheduler = SchedulerConfig(
        inventory_interval_min=int(os.environ.get("SCHEDULE_INVENTORY_MIN", "60")),
        events_interval_min=int(os.environ.get("SCHEDULE_EVENTS_MIN", "15")),
        compliance_interval_hours=int(os.environ.get("SCHEDULE_COMPLIANCE_HOURS", "24")),
        misfire_grace_time=int(os.environ.get("SCHEDULE_MISFIRE_GRACE", "300")),
        max_retries=int(os.environ.get("SCHEDULE_MAX_RETRIES", "3")),
    )

    return SyncConfig(
        database=database,
        rsc=load_rsc_config(credentials_file),
        fetch=fetch,
        compliance=compliance,
        scheduler=scheduler,
        event_hours=int(os.environ.get("RSC_EVENT_HOURS", "24")),
    )
