"""Shared fixtures for rsc_sync tests."""

import json
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from scripts.rsc_sync.mappers import MapContext
from scripts.rsc_sync.session import Session

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")

INSTANCE = "acme.my.rubrik.com"
NOW = datetime(2024, 1, 10, 20, 30, tzinfo=timezone.utc)


def load_fixture(name):
    with open(os.path.join(FIXTURES_DIR, name), encoding="utf-8") as fh:
        return json.load(fh)


def mock_response(payload=None, status_code=200, headers=None, text=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.headers = headers or {}
    resp.text = text if text is not None else json.dumps(payload)
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


def page(path, nodes, has_next=False, cursor=None):
    """Build a {"data": ...} envelope holding one connection page."""
    connection = {"nodes": nodes, "pageInfo": {"hasNextPage": has_next, "endCursor": cursor}}
    data = connection
    for key in reversed(path):
        data = {key: data}
    return {"data": data}


@pytest.fixture
def session():
    return Session(
        base_url=f"https://{INSTANCE}/api",
        auth_token="token-abc",
        instance_id=INSTANCE,
    )


@pytest.fixture
def ctx():
    return MapContext(instance_id=INSTANCE, now=NOW)
