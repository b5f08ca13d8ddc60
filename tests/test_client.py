import pytest
import requests

from sportsbook_client.client import SessionError, AUTH_EXPIRED_MESSAGE, NETWORK_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_login_success_persists_session(client, routes, make_response, make_token, user_payload, token_store):
    token = make_token()
    routes({("POST", "/auth/login"): make_response(200, {
        "success": True, "message": "ok", "token": token, "user": user_payload,
    })})

    response = await client.login("jane@example.com", "secret")

    assert response.success
    assert response.user.email == "jane@example.com"
    assert client.is_authenticated()
    stored = token_store.load()
    assert stored.token == token
    assert stored.user.full_name == "Jane Doe"


@pytest.mark.asyncio
async def test_login_rejected(client, routes, make_response, token_store):
    routes({("POST", "/auth/login"): make_response(401, {"success": False, "message": "Invalid credentials"})})

    response = await client.login("jane@example.com", "wrong")

    assert not response.success
    assert response.message == "Invalid credentials"
    assert not client.is_authenticated()
    assert token_store.load() is None


@pytest.mark.asyncio
async def test_login_network_error(client, routes):
    routes({("POST", "/auth/login"): requests.ConnectionError("refused")})

    response = await client.login("jane@example.com", "secret")

    assert response.success is False
    assert response.message == NETWORK_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_register_sends_profile(client, routes, make_response, make_token, user_payload, http):
    routes({("POST", "/auth/register"): make_response(201, {
        "success": True, "token": make_token(), "user": user_payload,
    })})

    response = await client.register("jane@example.com", "secret", "Jane", "Doe")

    assert response.success
    _, kwargs = http.request.call_args
    assert kwargs["json"] == {"email": "jane@example.com", "password": "secret", "firstName": "Jane", "lastName": "Doe"}


@pytest.mark.asyncio
async def test_refresh_is_idempotent(client, routes, make_response, make_token, user_payload, token_store):
    token_store.save_token(make_token())
    client.restore()
    routes({("GET", "/auth/profile"): make_response(200, {"success": True, "user": user_payload})})

    assert await client.refresh()
    first = client.user
    assert await client.refresh()

    assert client.user == first
    assert token_store.load().user == first


@pytest.mark.asyncio
async def test_refresh_sends_bearer(client, routes, make_response, make_token, user_payload, http):
    token = make_token()
    client.token = token
    routes({("GET", "/auth/profile"): make_response(200, {"success": True, "user": user_payload})})

    await client.refresh()

    _, kwargs = http.request.call_args
    assert kwargs["headers"]["Authorization"] == f"Bearer {token}"


@pytest.mark.asyncio
async def test_refresh_failure_clears_session(client, routes, make_response, make_token, user_payload, token_store):
    from sportsbook_client.models import User
    token_store.save(make_token(), User.from_dict(user_payload))
    client.restore()
    routes({("GET", "/auth/profile"): make_response(401, {"success": False})})

    assert not await client.refresh()

    assert client.token is None
    assert client.user is None
    assert token_store.load() is None


@pytest.mark.asyncio
async def test_refresh_network_error_clears_by_default(client, routes, make_token):
    client.token = make_token()
    routes({("GET", "/auth/profile"): requests.Timeout("slow")})

    assert not await client.refresh()
    assert client.token is None


@pytest.mark.asyncio
async def test_refresh_keeps_cache_when_unreachable(client, routes, make_response, make_token, user_payload):
    from sportsbook_client.models import User
    client.token = make_token()
    client.user = User.from_dict(user_payload)
    routes({("GET", "/auth/profile"): [requests.ConnectionError("down"), make_response(503, None)]})

    assert not await client.refresh(keep_on_unreachable=True)
    assert client.user is not None
    assert not await client.refresh(keep_on_unreachable=True)
    assert client.user is not None


@pytest.mark.asyncio
async def test_refresh_without_token_does_nothing(client, http):
    assert not await client.refresh()
    http.request.assert_not_called()


@pytest.mark.asyncio
async def test_set_token_and_refresh(client, routes, make_response, make_token, user_payload, token_store):
    token = make_token()
    routes({("GET", "/auth/profile"): make_response(200, {"success": True, "user": user_payload})})

    await client.set_token_and_refresh(token)

    assert client.is_authenticated()
    assert token_store.load().token == token


@pytest.mark.asyncio
async def test_set_token_and_refresh_failure_leaves_cleared(client, routes, make_response, make_token, token_store):
    routes({("GET", "/auth/profile"): make_response(200, {"success": False})})

    with pytest.raises(SessionError):
        await client.set_token_and_refresh(make_token())

    assert client.token is None
    assert token_store.load() is None


@pytest.mark.asyncio
async def test_logout_makes_no_request(client, http, make_token):
    client.token = make_token()
    client.logout()
    assert client.token is None
    http.request.assert_not_called()


@pytest.mark.asyncio
async def test_authenticated_401_forces_logout(client, routes, make_response, make_token, user_payload, token_store):
    from sportsbook_client.models import User
    token_store.save(make_token(), User.from_dict(user_payload))
    client.restore()
    routes({("POST", "/auth/place-bet"): make_response(401, {"message": "jwt expired"})})

    response = await client.place_bet(1, "match_winner", "home", 10.0, 2.0)

    assert response == {"success": False, "message": AUTH_EXPIRED_MESSAGE, "auth_expired": True}
    assert not client.is_authenticated()
    assert token_store.load() is None


@pytest.mark.asyncio
async def test_transport_error_becomes_failure(client, routes, make_token):
    client.token = make_token()
    routes({("POST", "/auth/deposit"): requests.ConnectionError("refused")})

    response = await client.deposit(50)

    assert response == {"success": False, "message": "Failed to process deposit"}
    assert client.token is not None


@pytest.mark.asyncio
async def test_get_balance(client, routes, make_response, make_token, user_payload):
    client.token = make_token()
    routes({("GET", "/auth/profile"): make_response(200, {"success": True, "user": user_payload})})

    assert await client.get_balance() == {"success": True, "balance": 250.0}


@pytest.mark.asyncio
async def test_get_user_bets_params(client, routes, make_response, make_token, http):
    client.token = make_token()
    routes({("GET", "/bets/my"): make_response(200, {"success": True, "bets": [], "pagination": {"hasNext": False}})})

    response = await client.get_user_bets(page=2, limit=5, status="won")

    assert response["success"]
    args, kwargs = http.request.call_args
    assert args == ("GET", "http://bets.test/api/bets/my")
    assert kwargs["params"] == {"page": 2, "limit": 5, "status": "won"}


@pytest.mark.asyncio
async def test_admin_calls(client, routes, make_response, make_token, http):
    client.token = make_token()
    routes({
        ("POST", "/api/wallet/admin/add-funds"): make_response(200, {"success": True}),
        ("GET", "/api/admin/users"): make_response(200, {"success": True, "users": []}),
        ("POST", "/api/admin/create"): make_response(200, {"success": True}),
    })

    assert (await client.add_funds_to_user("u-2", 100, "bonus"))["success"]
    assert (await client.get_all_users(search="jo"))["success"]
    _, kwargs = http.request.call_args
    assert kwargs["params"] == {"page": 1, "limit": 20, "search": "jo"}
    assert (await client.create_admin_user())["success"]
    _, kwargs = http.request.call_args
    assert "Authorization" not in kwargs["headers"]


def test_is_admin(client, user_payload):
    from sportsbook_client.models import User
    client.user = User.from_dict(user_payload)
    assert not client.is_admin()
    client.user.email = "admin@admin.com"
    assert client.is_admin()


@pytest.mark.asyncio
async def test_exchange_oauth_code(client, routes, make_response, http):
    routes({("POST", "/auth/google/callback"): make_response(200, {"success": True, "token": "t"})})

    data = await client.exchange_oauth_code("the-code", "the-state")

    assert data == {"success": True, "token": "t"}
    _, kwargs = http.request.call_args
    assert kwargs["json"] == {"code": "the-code", "state": "the-state"}


@pytest.mark.asyncio
async def test_authenticated_call_without_token_sends_nothing(client, http):
    response = await client.get_betting_stats()

    assert response["auth_expired"]
    http.request.assert_not_called()


@pytest.mark.asyncio
async def test_401_runs_expiry_callback(client, routes, make_response, make_token):
    expired = []
    client.on_expired = lambda: expired.append(client.token)
    client.token = make_token()
    routes({("GET", "/wallet/transactions"): make_response(401, None)})

    await client.get_transactions()

    assert expired == [None]
