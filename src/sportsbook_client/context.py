import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Iterable, Dict, Any

import pytz

from .client import SessionClient, SessionError
from .config import (
    CACHED_USER_MAX_AGE_HOURS,
    HOME_PATH,
    LOGIN_PATH,
    PUBLIC_PATHS,
)
from .models import User

logger = logging.getLogger(__name__)

Listener = Callable[["SessionContext"], None]


def resolve_redirect(authenticated: bool, path: str, public_paths: Iterable[str] = PUBLIC_PATHS) -> Optional[str]:
    """
    The single route-gating rule.

    Every path outside public_paths needs a session; a signed-in user is
    sent away from the login page.
    """
    if not authenticated and path not in public_paths:
        return LOGIN_PATH
    if authenticated and path == LOGIN_PATH:
        return HOME_PATH
    return None


class SessionContext:
    """
    Process-wide session state shared by every view.

    Views read `user`, `is_loading` and `is_initialized` and subscribe for
    changes; all mutations go through the methods here, which delegate to
    the SessionClient. Redirects are applied after each change once the
    initial sweep has finished.
    """

    def __init__(
        self,
        client: SessionClient,
        navigate: Callable[[str], None],
        location: str = HOME_PATH,
        public_paths: Iterable[str] = PUBLIC_PATHS,
        max_cached_age: timedelta = timedelta(hours=CACHED_USER_MAX_AGE_HOURS),
    ):
        self.client = client
        self._navigate = navigate
        self.location = location
        self.public_paths = tuple(public_paths)
        self.max_cached_age = max_cached_age

        self.user: Optional[User] = None
        self.is_loading = True
        self.is_initialized = False
        self._init_started = False
        self._listeners: List[Listener] = []
        client.on_expired = self.expire

    @property
    def is_authenticated(self) -> bool:
        # A user without a token is treated as logged out
        return self.user is not None and self.client.token is not None

    # --- Reactivity ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self):
        if self.is_initialized:
            target = resolve_redirect(self.is_authenticated, self.location, self.public_paths)
            if target is not None and target != self.location:
                logger.info(f"Redirecting {self.location} -> {target}")
                self.location = target
                self._navigate(target)
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    def visit(self, path: str):
        """The router moved to `path`; apply the gating rule to it."""
        self.location = path
        self._changed()

    def go(self, path: str):
        """Navigate to `path` on behalf of a view."""
        if path != self.location:
            self.location = path
            self._navigate(path)
        self._changed()

    # --- Initialization ---

    def _is_stale(self, saved_at: Optional[datetime]) -> bool:
        if saved_at is None:
            return True
        if saved_at.tzinfo is None:
            saved_at = pytz.utc.localize(saved_at)
        return datetime.now(pytz.utc) - saved_at > self.max_cached_age

    async def initialize(self):
        """Restore the persisted session and validate it. Runs once."""
        if self._init_started:
            return
        self._init_started = True
        self.is_loading = True

        try:
            session = self.client.restore()
            if session is not None:
                cached = session.user
                if cached is not None:
                    # Render with the cached user while the profile reloads
                    self.user = cached
                    self._changed()

                fallback = cached is not None and not self._is_stale(session.saved_at)
                refreshed = await self.client.refresh(keep_on_unreachable=fallback)
                if refreshed:
                    self.user = self.client.user
                elif fallback and self.client.token is not None:
                    logger.warning("Profile refresh failed, keeping cached user")
                else:
                    self.client.logout()
                    self.user = None
        except Exception as e:
            logger.error(f"Auth initialization error: {e}", exc_info=True)
            self.client.logout()
            self.user = None
        finally:
            self.is_loading = False
            self.is_initialized = True
            self._changed()

    # --- Mutations ---

    async def login(self, email: str, password: str) -> bool:
        response = await self.client.login(email, password)
        if response.success and response.user:
            self.user = response.user
            self._changed()
            return True
        return False

    async def register(self, email: str, password: str, first_name: str, last_name: str) -> bool:
        response = await self.client.register(email, password, first_name, last_name)
        if response.success and response.user:
            self.user = response.user
            self._changed()
            return True
        return False

    def logout(self):
        self.client.logout()
        self.user = None
        self.go(LOGIN_PATH)

    def expire(self):
        """An authenticated call came back 401. Drop the user and let the gating rule redirect."""
        if self.client.token is not None:
            self.client.logout()
        if self.user is None:
            return
        self.user = None
        self._changed()

    async def refresh_user(self):
        await self.client.refresh()
        self.user = self.client.user
        self._changed()

    async def set_token_and_refresh(self, token: str):
        try:
            await self.client.set_token_and_refresh(token)
        except SessionError:
            logger.error("Token processing failed, logging out")
            self.logout()
            raise
        self.user = self.client.user
        self._changed()

    async def deposit(self, amount: float, payment_method: str = "credit_card") -> Dict[str, Any]:
        response = await self.client.deposit(amount, payment_method)
        if response.get("success"):
            await self.refresh_user()
        return response
