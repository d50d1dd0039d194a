"""RSC session: authenticate once, then share an immutable handle."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from scripts.rsc_sync.config import RscConfig
from scripts.rsc_sync.errors import HTTPError, TransportError

logger = logging.getLogger("rsc_sync.session")


@dataclass(frozen=True)
class Session:
    """Connection details every GraphQL call needs.

    Read-only after connect(), so it is safe to share across worker threads.
    """

    base_url: str
    auth_token: str
    instance_id: str
    verify_tls: bool = True

    @property
    def graphql_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/graphql"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.auth_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }


def connect(config: RscConfig, timeout: float = 30.0, verify_tls: bool = True) -> Session:
    """Exchange client credentials for a bearer token.

    Raises TransportError on network failure and HTTPError on a rejected
    token request.
    """
    payload = {
        "grant_type": "client_credentials",
        "client_id": config.client_id,
        "client_secret": config.client_secret,
    }
    logger.info("Connecting to %s", config.instance_id)
    try:
        resp = requests.post(
            config.access_token_uri,
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            verify=verify_tls,
        )
    except requests.RequestException as exc:
        raise TransportError(f"Token request to {config.instance_id} failed: {exc}") from exc

    if not resp.ok:
        raise HTTPError(resp.status_code, resp.text[:400])

    try:
        body = resp.json()
    except ValueError as exc:
        raise TransportError(f"Token response from {config.instance_id} is not JSON") from exc
    token = body.get("access_token") if isinstance(body, dict) else None
    if not token:
        raise HTTPError(resp.status_code, "token response did not contain access_token")

    logger.info("Connected to %s", config.instance_id)
    return Session(
        base_url=config.base_url,
        auth_token=token,
        instance_id=config.instance_id,
        verify_tls=verify_tls,
    )


def disconnect(session: Session, timeout: float = 30.0) -> None:
    """Revoke the session token. Failures are logged, not raised."""
    try:
        resp = requests.delete(
            f"{session.base_url.rstrip('/')}/session",
            headers=session.headers,
            timeout=timeout,
            verify=session.verify_tls,
        )
        if not resp.ok:
            logger.warning("Session delete returned HTTP %d", resp.status_code)
    except requests.RequestException as exc:
        logger.warning("Session delete failed: %s", exc)
