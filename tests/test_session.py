"""Tests for session.connect / disconnect.

requests.post and requests.delete are mocked; no real HTTP calls are made.
"""

from unittest.mock import patch

import pytest
import requests

from scripts.rsc_sync.config import RscConfig
from scripts.rsc_sync.errors import HTTPError, TransportError
from scripts.rsc_sync.session import connect, disconnect

from tests.conftest import mock_response

CONFIG = RscConfig("client|abc", "s3cret", "https://acme.my.rubrik.com/api/client_token")


def test_connect_posts_client_credentials():
    with patch(
        "scripts.rsc_sync.session.requests.post",
        return_value=mock_response({"access_token": "tok", "expires_in": 43200}),
    ) as mock_post:
        session = connect(CONFIG)

    args, kwargs = mock_post.call_args
    assert args[0] == CONFIG.access_token_uri
    assert kwargs["json"] == {
        "grant_type": "client_credentials",
        "client_id": "client|abc",
        "client_secret": "s3cret",
    }
    assert session.auth_token == "tok"
    assert session.instance_id == "acme.my.rubrik.com"
    assert session.graphql_url == "https://acme.my.rubrik.com/api/graphql"
    assert session.headers["Authorization"] == "Bearer tok"


def test_connect_rejected_credentials():
    with patch(
        "scripts.rsc_sync.session.requests.post",
        return_value=mock_response(status_code=401, text="bad client"),
    ):
        with pytest.raises(HTTPError) as info:
            connect(CONFIG)
    assert info.value.status_code == 401


def test_connect_without_token_in_response():
    with patch("scripts.rsc_sync.session.requests.post", return_value=mock_response({"token_type": "bearer"})):
        with pytest.raises(HTTPError):
            connect(CONFIG)


def test_connect_network_failure():
    with patch("scripts.rsc_sync.session.requests.post", side_effect=requests.Timeout("slow")):
        with pytest.raises(TransportError):
            connect(CONFIG)


def test_disconnect_deletes_session(session):
    with patch("scripts.rsc_sync.session.requests.delete", return_value=mock_response({})) as mock_delete:
        disconnect(session)
    assert mock_delete.call_args[0][0] == "https://acme.my.rubrik.com/api/session"


def test_disconnect_failure_is_not_raised(session):
    with patch("scripts.rsc_sync.session.requests.delete", side_effect=requests.ConnectionError("gone")):
        disconnect(session)
