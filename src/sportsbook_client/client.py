import asyncio
import logging
from typing import Callable, Optional, Dict, Any, Tuple

import requests

from .config import (
    AUTH_SERVICE_URL,
    BETS_SERVICE_URL,
    WALLET_SERVICE_URL,
    GATEWAY_URL,
    REQUEST_TIMEOUT_SECONDS,
    ADMIN_EMAIL,
)
from .models import AuthResponse, Session, User
from .storage import TokenStore

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please try again."
AUTH_EXPIRED_MESSAGE = "Authentication expired"


class AuthExpiredError(Exception):
    """The backend rejected the bearer token (HTTP 401)."""
    pass


class SessionError(Exception):
    """A token was accepted locally but no user could be loaded for it."""
    pass


def _token_hint(token: str) -> str:
    return token[:20] + "..."


class SessionClient:
    """
    Talks to the auth, wallet and bets services on behalf of one user session.

    The client is the only writer of the TokenStore; everything else reads the
    session through it (or through SessionContext).
    """

    def __init__(
        self,
        token_store: TokenStore,
        http: Optional[requests.Session] = None,
        auth_url: str = AUTH_SERVICE_URL,
        bets_url: str = BETS_SERVICE_URL,
        wallet_url: str = WALLET_SERVICE_URL,
        gateway_url: str = GATEWAY_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.token_store = token_store
        self.http = http or requests.Session()
        self.http.headers.update({"Accept": "application/json"})
        self.auth_url = auth_url.rstrip("/")
        self.bets_url = bets_url.rstrip("/")
        self.wallet_url = wallet_url.rstrip("/")
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout

        self.token: Optional[str] = None
        self.user: Optional[User] = None
        # Called after a 401 has logged the session out
        self.on_expired: Optional[Callable[[], None]] = None

    # --- Session state ---

    def restore(self) -> Optional[Session]:
        """Load the persisted session into memory. Expired tokens come back as None."""
        session = self.token_store.load()
        if session is None:
            self.token = None
            self.user = None
            return None
        self.token = session.token
        self.user = session.user
        return session

    def is_authenticated(self) -> bool:
        return self.token is not None and self.user is not None

    def is_admin(self) -> bool:
        return self.user is not None and self.user.email == ADMIN_EMAIL

    def logout(self):
        self.token = None
        self.user = None
        self.token_store.clear()

    def _adopt(self, token: str, user: User):
        self.token = token
        self.user = user
        self.token_store.save(token, user)

    # --- Transport ---

    def _send_sync(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Tuple[int, Any]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = self.http.request(
            method,
            url,
            json=payload,
            params=params,
            headers=headers,
            timeout=self.timeout,
        )
        try:
            data = response.json()
        except ValueError:
            data = None
        return response.status_code, data

    async def _send(self, method: str, url: str, **kwargs) -> Tuple[int, Any]:
        return await asyncio.to_thread(self._send_sync, method, url, **kwargs)

    async def request(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Authenticated request. A 401 logs the session out and raises
        AuthExpiredError; transport errors propagate as requests exceptions.
        Without a token nothing is sent.
        """
        if self.token is None:
            raise AuthExpiredError(AUTH_EXPIRED_MESSAGE)

        status, data = await self._send(method, url, payload=payload, params=params, token=self.token)
        if status == 401:
            logger.warning(f"401 from {url}, session expired")
            self.logout()
            if self.on_expired is not None:
                self.on_expired()
            raise AuthExpiredError(AUTH_EXPIRED_MESSAGE)
        if not isinstance(data, dict):
            return {"success": False, "message": f"Unexpected response ({status})"}
        return data

    async def _authed(
        self,
        method: str,
        url: str,
        failure_message: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            return await self.request(method, url, payload=payload, params=params)
        except AuthExpiredError:
            return {"success": False, "message": AUTH_EXPIRED_MESSAGE, "auth_expired": True}
        except requests.RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            return {"success": False, "message": failure_message}

    async def get_public(self, url: str) -> Optional[Dict[str, Any]]:
        """Unauthenticated GET. Returns the JSON body on 2xx, None otherwise."""
        try:
            status, data = await self._send("GET", url)
        except requests.RequestException as e:
            logger.error(f"Exception fetching {url}: {e}")
            return None
        if 200 <= status < 300:
            return data if isinstance(data, dict) else {}
        logger.warning(f"Error fetching {url}: {status}")
        return None

    # --- Auth ---

    async def _authenticate(self, endpoint: str, payload: Dict[str, Any]) -> AuthResponse:
        url = f"{self.auth_url}{endpoint}"
        try:
            status, data = await self._send("POST", url, payload=payload)
        except requests.RequestException as e:
            logger.error(f"{endpoint} error: {e}")
            return AuthResponse(success=False, message=NETWORK_ERROR_MESSAGE)

        if not isinstance(data, dict):
            return AuthResponse(success=False, message=f"Unexpected response ({status})")

        response = AuthResponse.from_dict(data)
        if response.success and response.token and response.user:
            self._adopt(response.token, response.user)
            logger.info(f"Authenticated {response.user.email}")
        elif response.success:
            response.success = False
            response.message = response.message or "Incomplete authentication response"
        return response

    async def login(self, email: str, password: str) -> AuthResponse:
        return await self._authenticate("/auth/login", {"email": email, "password": password})

    async def register(self, email: str, password: str, first_name: str, last_name: str) -> AuthResponse:
        return await self._authenticate(
            "/auth/register",
            {"email": email, "password": password, "firstName": first_name, "lastName": last_name},
        )

    async def refresh(self, keep_on_unreachable: bool = False) -> bool:
        """
        Re-fetch the profile for the stored token.

        Any failure clears the session, except that with keep_on_unreachable
        a transport error or 5xx leaves the cached state untouched.
        Returns True when a fresh user was stored.
        """
        if not self.token:
            return False

        token = self.token
        logger.debug(f"Refreshing user data with token {_token_hint(token)}")
        try:
            status, data = await self._send("GET", f"{self.auth_url}/auth/profile", token=token)
        except requests.RequestException as e:
            logger.error(f"Refresh user data error: {e}")
            if not keep_on_unreachable:
                self.logout()
            return False

        if status >= 500 and keep_on_unreachable:
            logger.warning(f"Profile service unavailable ({status}), keeping cached user")
            return False

        if status == 200 and isinstance(data, dict) and data.get("success") and isinstance(data.get("user"), dict):
            if self.token != token:
                # Session changed while the request was in flight
                return False
            self.user = User.from_dict(data["user"])
            self.token_store.save_user(self.user)
            return True

        logger.warning(f"Failed to refresh user data ({status})")
        self.logout()
        return False

    async def set_token_and_refresh(self, token: str):
        """Persist a token from an external flow and load its user, or leave everything cleared."""
        self.token = token
        self.user = None
        self.token_store.save_token(token)
        await self.refresh()
        if self.user is None:
            self.logout()
            raise SessionError("Failed to fetch user data after setting token")

    async def exchange_oauth_code(self, code: str, state: Optional[str]) -> Dict[str, Any]:
        url = f"{self.auth_url}/auth/google/callback"
        try:
            status, data = await self._send("POST", url, payload={"code": code, "state": state})
        except requests.RequestException as e:
            logger.error(f"OAuth code exchange failed: {e}")
            return {"success": False, "message": "Failed to complete Google authentication"}
        if not isinstance(data, dict):
            return {"success": False, "message": f"Unexpected response ({status})"}
        return data

    # --- Wallet ---

    async def get_balance(self) -> Dict[str, Any]:
        response = await self._authed("GET", f"{self.auth_url}/auth/profile", "Failed to fetch balance")
        if response.get("success") and isinstance(response.get("user"), dict):
            return {"success": True, "balance": float(response["user"].get("balance", 0) or 0)}
        if response.get("auth_expired"):
            return response
        return {"success": False, "message": "Failed to fetch balance"}

    async def deposit(self, amount: float, payment_method: str = "credit_card") -> Dict[str, Any]:
        return await self._authed(
            "POST",
            f"{self.auth_url}/auth/deposit",
            "Failed to process deposit",
            payload={"amount": amount, "paymentMethod": payment_method},
        )

    async def withdraw(self, amount: float, payment_method: str = "bank_transfer") -> Dict[str, Any]:
        return await self._authed(
            "POST",
            f"{self.wallet_url}/wallet/withdraw",
            "Failed to process withdrawal",
            payload={"amount": amount, "paymentMethod": payment_method},
        )

    async def get_transactions(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        return await self._authed(
            "GET",
            f"{self.wallet_url}/wallet/transactions",
            "Failed to fetch transactions",
            params={"page": page, "limit": limit},
        )

    # --- Betting ---

    async def place_bet(self, fixture_id: int, bet_type: str, selection: str, stake: float, odds: float) -> Dict[str, Any]:
        return await self._authed(
            "POST",
            f"{self.auth_url}/auth/place-bet",
            "Failed to place bet",
            payload={
                "fixtureId": fixture_id,
                "betType": bet_type,
                "selection": selection,
                "stake": stake,
                "odds": odds,
            },
        )

    async def get_user_bets(self, page: int = 1, limit: int = 20, status: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        return await self._authed("GET", f"{self.bets_url}/bets/my", "Failed to fetch bets", params=params)

    async def get_betting_stats(self) -> Dict[str, Any]:
        return await self._authed("GET", f"{self.bets_url}/bets/stats/summary", "Failed to fetch betting stats")

    # --- Admin ---

    async def add_funds_to_user(self, user_id: str, amount: float, description: Optional[str] = None) -> Dict[str, Any]:
        return await self._authed(
            "POST",
            f"{self.gateway_url}/api/wallet/admin/add-funds",
            "Failed to add funds",
            payload={"userId": user_id, "amount": amount, "description": description},
        )

    async def get_all_users(self, page: int = 1, limit: int = 20, search: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        return await self._authed("GET", f"{self.gateway_url}/api/admin/users", "Failed to fetch users", params=params)

    async def create_admin_user(self) -> Dict[str, Any]:
        url = f"{self.gateway_url}/api/admin/create"
        try:
            status, data = await self._send("POST", url)
        except requests.RequestException as e:
            logger.error(f"Admin bootstrap failed: {e}")
            return {"success": False, "message": "Failed to create admin user"}
        if not isinstance(data, dict):
            return {"success": False, "message": "Failed to create admin user"}
        return data
