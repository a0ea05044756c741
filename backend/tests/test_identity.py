"""Tests for IdentityClient."""

import pytest
from unittest.mock import Mock, patch
import requests

from services.errors import AuthorizationError
from services.identity import IdentityClient

ACTIVE_SESSION = {
    "id": "sess_123",
    "status": "active",
    "user_id": "user_alice",
    "last_active_organization_id": "org_1",
}

MEMBERSHIPS = {
    "data": [
        {"organization": {"id": "org_1"}, "role": "org:admin"},
        {"organization": {"id": "org_3"}, "role": "org:member"},
    ]
}


def response(status_code=200, payload=None):
    mock = Mock(status_code=status_code)
    mock.json.return_value = payload
    if status_code >= 400:
        mock.raise_for_status.side_effect = requests.exceptions.HTTPError(str(status_code))
    return mock


@pytest.fixture
def identity():
    return IdentityClient("https://identity.example.com/", "sk_test")


class TestIdentityClientInit:
    """Test client initialization."""

    def test_init_strips_trailing_slash(self, identity):
        assert identity.api_url == "https://identity.example.com"


class TestResolveCaller:
    """Test session and membership resolution."""

    @patch("services.identity.requests.get")
    def test_resolves_last_active_organization(self, mock_get, identity):
        mock_get.side_effect = [response(payload=ACTIVE_SESSION), response(payload=MEMBERSHIPS)]

        caller = identity.resolve_caller("sess_123")

        assert caller == {"userId": "user_alice", "orgId": "org_1", "role": "org:admin"}
        first_call = mock_get.call_args_list[0]
        assert first_call.args[0] == "https://identity.example.com/v1/sessions/sess_123"
        assert first_call.kwargs["headers"]["Authorization"] == "Bearer sk_test"

    @patch("services.identity.requests.get")
    def test_resolves_requested_organization(self, mock_get, identity):
        mock_get.side_effect = [response(payload=ACTIVE_SESSION), response(payload=MEMBERSHIPS)]

        caller = identity.resolve_caller("sess_123", "org_3")

        assert caller["orgId"] == "org_3"
        assert caller["role"] == "org:member"

    @patch("services.identity.requests.get")
    def test_rejects_non_member(self, mock_get, identity):
        mock_get.side_effect = [response(payload=ACTIVE_SESSION), response(payload=MEMBERSHIPS)]

        with pytest.raises(AuthorizationError):
            identity.resolve_caller("sess_123", "org_2")

    @patch("services.identity.requests.get")
    def test_rejects_inactive_session(self, mock_get, identity):
        mock_get.return_value = response(payload=dict(ACTIVE_SESSION, status="revoked"))

        with pytest.raises(AuthorizationError):
            identity.resolve_caller("sess_123")

    @patch("services.identity.requests.get")
    def test_rejects_unknown_session(self, mock_get, identity):
        mock_get.return_value = response(status_code=404)

        with pytest.raises(AuthorizationError):
            identity.resolve_caller("sess_missing")

    @patch("services.identity.requests.get")
    def test_rejects_session_without_organization(self, mock_get, identity):
        mock_get.return_value = response(payload=dict(ACTIVE_SESSION, last_active_organization_id=None))

        with pytest.raises(AuthorizationError):
            identity.resolve_caller("sess_123")

    def test_rejects_missing_session(self, identity):
        with pytest.raises(AuthorizationError):
            identity.resolve_caller("")

    @patch("services.identity.requests.get")
    def test_provider_errors_propagate(self, mock_get, identity):
        mock_get.return_value = response(status_code=500)

        with pytest.raises(requests.exceptions.HTTPError):
            identity.resolve_caller("sess_123")

    @patch("services.identity.requests.get")
    def test_timeout_propagates(self, mock_get, identity):
        mock_get.side_effect = requests.exceptions.Timeout()

        with pytest.raises(requests.exceptions.Timeout):
            identity.resolve_caller("sess_123")
