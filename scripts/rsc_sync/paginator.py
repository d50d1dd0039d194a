"""Cursor pagination over GraphQL connections.

Follows pageInfo.hasNextPage / endCursor, threading the cursor into
variables.after on each iteration. Pages are appended in server order.
A failure after some pages were fetched returns the partial result with
the error attached rather than discarding what was already retrieved.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from scripts.rsc_sync.errors import (
    FetchCancelled,
    MappingError,
    PaginationLimitError,
    RscError,
)
from scripts.rsc_sync.graphql_client import GraphQLClient, GraphQLRequest

logger = logging.getLogger("rsc_sync.paginator")


@dataclass
class PageResult:
    nodes: list[dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    complete: bool = False
    error: Optional[RscError] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def resolve_connection(data: Any, node_path: Sequence[str], operation_name: str = "") -> dict[str, Any]:
    """Walk ``node_path`` below ``data`` and return the connection object."""
    current = data
    for key in node_path:
        if not isinstance(current, dict):
            raise MappingError(operation_name or "connection", None, f"expected object at {key!r}")
        current = current.get(key)
    if current is None:
        raise MappingError(
            operation_name or "connection", None,
            f"response has no {'.'.join(node_path) or 'data'} connection",
        )
    if not isinstance(current, dict):
        raise MappingError(
            operation_name or "connection", None,
            f"{'.'.join(node_path)} is not a connection object",
        )
    return current


def extract_nodes(connection: dict[str, Any]) -> list[dict[str, Any]]:
    """Return connection.nodes, or edges[].node when nodes is absent."""
    nodes = connection.get("nodes")
    if nodes is None:
        edges = connection.get("edges") or []
        nodes = [edge.get("node") for edge in edges if isinstance(edge, dict)]
    return [n for n in nodes if n is not None]


class Paginator:
    """Drives a GraphQLClient until the connection is exhausted."""

    def __init__(self, client: GraphQLClient, max_pages: int = 1000) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self.client = client
        self.max_pages = max_pages

    def fetch_all(
        self,
        request: GraphQLRequest,
        node_path: Sequence[str],
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> PageResult:
        """Fetch every page of the connection at ``node_path``.

        ``deadline`` is a time.monotonic() value. Cancellation is checked
        before each request; once tripped no further pages are requested.
        """
        result = PageResult()
        current = request.with_variables()

        while True:
            if cancel is not None and cancel.is_set():
                result.error = FetchCancelled(f"{request.operation_name} cancelled after {result.pages} pages")
                return result
            if deadline is not None and time.monotonic() >= deadline:
                result.error = FetchCancelled(f"{request.operation_name} deadline reached after {result.pages} pages")
                return result
            if result.pages >= self.max_pages:
                result.error = PaginationLimitError(
                    f"{request.operation_name} still had pages after {self.max_pages} requests"
                )
                logger.error("Pagination guard tripped: %s", result.error)
                return result

            try:
                payload = self.client.execute(current)
                connection = resolve_connection(payload.get("data"), node_path, request.operation_name)
            except RscError as exc:
                logger.error(
                    "%s failed after %d pages: %s",
                    request.operation_name, result.pages, exc,
                    extra={"pages": result.pages, "records": len(result.nodes)},
                )
                result.error = exc
                return result

            result.pages += 1
            result.nodes.extend(extract_nodes(connection))

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                result.complete = True
                logger.debug(
                    "%s complete", request.operation_name,
                    extra={"pages": result.pages, "records": len(result.nodes)},
                )
                return result

            cursor = page_info.get("endCursor")
            if not cursor:
                result.error = PaginationLimitError(
                    f"{request.operation_name} reported hasNextPage without an endCursor"
                )
                return result
            current = current.with_variables(after=cursor)
