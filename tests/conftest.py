import time
import pytest
from unittest.mock import MagicMock
from jose import jwt

from sportsbook_client.client import SessionClient
from sportsbook_client.context import SessionContext
from sportsbook_client.notifications import Notifier
from sportsbook_client.storage import TokenStore, TabStorage


@pytest.fixture
def user_payload():
    return {
        "id": "u-1",
        "email": "jane@example.com",
        "firstName": "Jane",
        "lastName": "Doe",
        "fullName": "Jane Doe",
        "balance": 250.0,
        "stats": {"totalBets": 4, "wonBets": 3, "lostBets": 1, "pendingBets": 0,
                  "totalWinnings": 120.0, "totalLosses": 20.0},
        "isActive": True,
    }


@pytest.fixture
def make_token():
    """Signed JWT whose exp is `offset` seconds from now."""
    def _make(offset=3600):
        return jwt.encode({"sub": "u-1", "exp": int(time.time()) + offset}, "test-secret", algorithm="HS256")
    return _make


@pytest.fixture
def make_response():
    def _make(status=200, payload=None):
        response = MagicMock()
        response.status_code = status
        if payload is None:
            response.json.side_effect = ValueError("No JSON")
        else:
            response.json.return_value = payload
        return response
    return _make


@pytest.fixture
def http():
    """Stand-in for requests.Session; tests install routes on http.request."""
    return MagicMock()


@pytest.fixture
def routes(http):
    """
    Map (method, url suffix) to a response, an exception, or a list consumed in order.
    Unrouted requests fail the test.
    """
    def _install(table):
        def _request(method, url, **kwargs):
            for (route_method, suffix), outcome in table.items():
                if route_method == method and url.endswith(suffix):
                    if isinstance(outcome, list):
                        outcome = outcome.pop(0)
                    if isinstance(outcome, Exception):
                        raise outcome
                    return outcome
            raise AssertionError(f"Unexpected request {method} {url}")
        http.request.side_effect = _request
        return http
    return _install


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(db_path=str(tmp_path / "session.db"))


@pytest.fixture
def client(token_store, http):
    return SessionClient(
        token_store,
        http=http,
        auth_url="http://auth.test",
        bets_url="http://bets.test/api",
        wallet_url="http://wallet.test/api",
        gateway_url="http://gateway.test",
    )


@pytest.fixture
def navigations():
    return []


@pytest.fixture
def context(client, navigations):
    return SessionContext(client, navigate=navigations.append, location="/")


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def tab_storage():
    return TabStorage()
