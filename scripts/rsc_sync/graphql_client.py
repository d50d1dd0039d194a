"""GraphQL client for the RSC API.

Issues POST {base_url}/graphql with a {operationName, variables, query}
body, decodes the data/errors envelope and classifies failures into the
rsc_sync error taxonomy. Retryable failures are retried with exponential
backoff; everything else propagates to the caller.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import requests

from scripts.rsc_sync.errors import APIError, HTTPError, RscError, TransportError
from scripts.rsc_sync.rate_limit import RequestLimiter
from scripts.rsc_sync.session import Session

logger = logging.getLogger("rsc_sync.graphql")

MAX_PAGE_SIZE = 1000
MAX_BACKOFF_SECONDS = 60.0


@dataclass
class GraphQLRequest:
    operation_name: str
    query: str
    variables: dict[str, Any] = field(default_factory=dict)
    # Mutations that start jobs must not be replayed after an ambiguous failure
    idempotent: bool = True

    def validate(self) -> None:
        if not self.operation_name:
            raise ValueError("GraphQL request requires an operationName")
        if not self.query or not self.query.strip():
            raise ValueError("GraphQL request requires a query document")
        if "first" in self.variables:
            first = self.variables["first"]
            if isinstance(first, bool) or not isinstance(first, int) or not 0 < first <= MAX_PAGE_SIZE:
                raise ValueError(
                    f"variables.first must be an integer in 1..{MAX_PAGE_SIZE}, got {first!r}"
                )

    def to_body(self) -> dict[str, Any]:
        return {
            "operationName": self.operation_name,
            "variables": self.variables,
            "query": self.query,
        }

    def with_variables(self, **updates: Any) -> "GraphQLRequest":
        """Copy of this request with some variables replaced."""
        variables = copy.deepcopy(self.variables)
        variables.update(updates)
        return GraphQLRequest(self.operation_name, self.query, variables, self.idempotent)


class GraphQLClient:
    """Thread-safe GraphQL executor bound to one Session."""

    def __init__(
        self,
        session: Session,
        timeout: float = 60.0,
        max_retries: int = 3,
        limiter: Optional[RequestLimiter] = None,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self.max_retries = max_retries
        self.limiter = limiter or RequestLimiter()
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._http = requests.Session()
        self._http.headers.update(session.headers)
        self._http.verify = session.verify_tls

    def execute(self, request: GraphQLRequest) -> dict[str, Any]:
        """Run one GraphQL operation and return the parsed envelope.

        Raises:
            ValueError: the request is malformed.
            TransportError / HTTPError / APIError: after retries are exhausted,
                or immediately when the failure is not retryable or the
                request is not idempotent.
        """
        request.validate()
        attempt = 0
        while True:
            try:
                return self._execute_once(request)
            except RscError as exc:
                if not request.idempotent or not exc.retryable or attempt >= self.max_retries:
                    raise
                delay = self._backoff(attempt, exc)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    request.operation_name, attempt + 1, self.max_retries, delay, exc,
                )
                self._sleep(delay)
                attempt += 1

    def _backoff(self, attempt: int, exc: RscError) -> float:
        if isinstance(exc, HTTPError) and exc.retry_after:
            return min(exc.retry_after, MAX_BACKOFF_SECONDS)
        return min(self.backoff_base * (2 ** attempt), MAX_BACKOFF_SECONDS)

    def _execute_once(self, request: GraphQLRequest) -> dict[str, Any]:
        with self.limiter:
            try:
                resp = self._http.post(
                    self.session.graphql_url,
                    json=request.to_body(),
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise TransportError(f"{request.operation_name}: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise HTTPError(
                resp.status_code,
                resp.text[:400],
                retry_after=_retry_after(resp),
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TransportError(f"{request.operation_name}: invalid JSON response") from exc
        if not isinstance(payload, dict):
            raise TransportError(f"{request.operation_name}: unexpected response envelope")

        errors = payload.get("errors") or []
        if errors:
            messages = [
                e.get("message", str(e)) if isinstance(e, dict) else str(e)
                for e in errors
            ]
            raise APIError(messages, request.operation_name)

        return payload


def _retry_after(resp: requests.Response) -> Optional[float]:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None
