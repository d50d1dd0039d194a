"""Credential and secret resolution.

Values in the environment or in a service account file may be cloud secret
references instead of literals:

  aws-secret://NAME          AWS Secrets Manager, whole SecretString
  aws-secret://NAME#KEY      AWS Secrets Manager, one key of a JSON secret
  gcp-secret://NAME          GCP Secret Manager, latest version in $GCP_PROJECT_ID
  gcp-secret://projects/P/secrets/NAME/versions/V
  gcp-secret://...#KEY       one key of a JSON payload

The cloud SDKs are imported only when a reference for them is resolved.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Callable, Optional
from urllib.parse import quote

logger = logging.getLogger("rsc_sync.secrets")

SERVICE_ACCOUNT_KEYS = ("client_id", "client_secret", "access_token_uri")


def _split_key(ref: str) -> tuple[str, Optional[str]]:
    name, _, key = ref.partition("#")
    return name, key or None


def _pick_key(payload: str, key: Optional[str], name: str) -> str:
    if key is None:
        return payload
    try:
        return str(json.loads(payload)[key])
    except (ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"Secret {name} has no JSON key {key!r}") from exc


def _aws_secret(ref: str) -> str:
    import boto3

    name, key = _split_key(ref)
    region = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION", "us-east-1")
    secrets_client = boto3.client("secretsmanager", region_name=region)
    payload = secrets_client.get_secret_value(SecretId=name)["SecretString"]
    return _pick_key(payload, key, name)


def _gcp_secret(ref: str) -> str:
    from google.cloud import secretmanager

    name, key = _split_key(ref)
    if not name.startswith("projects/"):
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            raise RuntimeError(f"gcp-secret://{name} needs GCP_PROJECT_ID or a full resource name")
        name = f"projects/{project}/secrets/{name}/versions/latest"

    secrets_client = secretmanager.SecretManagerServiceClient()
    payload = secrets_client.access_secret_version(request={"name": name}).payload.data.decode("utf-8")
    return _pick_key(payload, key, name)


SECRET_BACKENDS: dict[str, Callable[[str], str]] = {
    "aws-secret://": _aws_secret,
    "gcp-secret://": _gcp_secret,
}


def resolve_secret(value: str) -> str:
    """Return ``value`` itself, or the secret it references."""
    for prefix, backend in SECRET_BACKENDS.items():
        if value.startswith(prefix):
            logger.debug("Resolving %s%s", prefix, _split_key(value[len(prefix):])[0])
            return backend(value[len(prefix):])
    return value


def load_service_account_file(path: str) -> dict[str, str]:
    """Read an RSC service account JSON file.

    The file holds client_id, client_secret, access_token_uri and a display
    name. The client secret may itself be a cloud secret reference.
    """
    with open(os.path.expanduser(path), encoding="utf-8") as fh:
        data = json.load(fh)

    missing = [k for k in SERVICE_ACCOUNT_KEYS if not data.get(k)]
    if missing:
        raise ValueError(f"Service account file {path} is missing: {', '.join(missing)}")

    logger.debug("Loaded service account %s", data.get("name", data["client_id"]))
    return {
        "client_id": data["client_id"],
        "client_secret": resolve_secret(data["client_secret"]),
        "access_token_uri": data["access_token_uri"],
        "name": data.get("name", ""),
    }


def resolve_database_url() -> str:
    """DATABASE_URL if set, else a URL assembled from PG_* variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url:
        return resolve_secret(url)

    env = os.environ.get
    password = resolve_secret(env("PG_PASSWORD", "localdev-change-me"))
    return "postgresql://{user}:{password}@{host}:{port}/{database}".format(
        user=quote(env("PG_USER", "rsc_reporting"), safe=""),
        password=quote(password, safe=""),
        host=env("PG_HOST", "localhost"),
        port=env("PG_PORT", "5432"),
        database=env("PG_DATABASE", "rsc_reporting"),
    )
