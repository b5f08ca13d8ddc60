"""
Google sign-in: starting the authorization redirect and handling the callback.

The callback handler is a one-shot state machine:

    Start -> ErrorFromProvider | CodeExchange | LegacyToken | NoData -> Done

Every failure path ends on the login page with an error notice, success ends
on the landing page.
"""
import enum
import logging
import secrets
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlencode

from .client import SessionClient, SessionError
from .config import (
    GOOGLE_AUTH_URL,
    GOOGLE_CLIENT_ID,
    HOME_PATH,
    LOGIN_PATH,
    OAUTH_REDIRECT_URI,
    OAUTH_SCOPE,
)
from .context import SessionContext
from .notifications import Notifier
from .storage import TabStorage

logger = logging.getLogger(__name__)

OAUTH_STATE_KEY = "oauth_state"

PROVIDER_ERROR_MESSAGES = {
    "access_denied": "Google authentication was cancelled.",
    "oauth_failed": "Google authentication failed. Please try again.",
    "oauth_error": "Google authentication error. Please try again.",
}
DEFAULT_PROVIDER_ERROR = "Authentication failed. Please try again."
STATE_MISMATCH_MESSAGE = "Security verification failed. Please try again."
NO_DATA_MESSAGE = "No authentication data received. Please try again."


class OAuthConfigError(Exception):
    pass


def begin_oauth_login(
    tab_storage: TabStorage,
    client_id: str = GOOGLE_CLIENT_ID,
    redirect_uri: str = OAUTH_REDIRECT_URI,
) -> str:
    """Generate and store a CSRF state, and return the provider URL to send the user to."""
    if not client_id:
        raise OAuthConfigError("Google OAuth is not configured. Please contact administrator.")

    state = secrets.token_urlsafe(16)
    tab_storage.set(OAUTH_STATE_KEY, state)

    query = urlencode({
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": OAUTH_SCOPE,
        "state": state,
        "access_type": "offline",
        "prompt": "consent",
    })
    return f"{GOOGLE_AUTH_URL}?{query}"


class CallbackPath(enum.Enum):
    ERROR_FROM_PROVIDER = "error_from_provider"
    CODE_EXCHANGE = "code_exchange"
    LEGACY_TOKEN = "legacy_token"
    NO_DATA = "no_data"


@dataclass
class CallbackOutcome:
    path: CallbackPath
    success: bool
    message: str
    redirect_to: str


class OAuthCallbackHandler:
    """Handles one visit to the OAuth callback page."""

    def __init__(
        self,
        context: SessionContext,
        client: SessionClient,
        tab_storage: TabStorage,
        notifier: Notifier,
    ):
        self.context = context
        self.client = client
        self.tab_storage = tab_storage
        self.notifier = notifier
        self.handled = False
        self.attached = True
        self.outcome: Optional[CallbackOutcome] = None

    def detach(self):
        """The callback view went away; late results are ignored."""
        self.attached = False

    async def handle(self, params: Mapping[str, str]) -> Optional[CallbackOutcome]:
        # Re-entrant calls (a second render) do nothing
        if self.handled:
            return None
        self.handled = True

        error = params.get("error")
        code = params.get("code")
        token = params.get("token")

        if error:
            logger.error(f"OAuth error received: {error}")
            message = PROVIDER_ERROR_MESSAGES.get(error, DEFAULT_PROVIDER_ERROR)
            return self._finish(CallbackPath.ERROR_FROM_PROVIDER, False, message)

        if code:
            return await self._exchange_code(code, params.get("state"))

        if token:
            try:
                await self.context.set_token_and_refresh(token)
            except SessionError as e:
                logger.error(f"Error handling token: {e}")
                return self._finish(CallbackPath.LEGACY_TOKEN, False, "Failed to process authentication token.")
            return self._finish(CallbackPath.LEGACY_TOKEN, True, "Successfully logged in!")

        logger.error("No authentication data received in callback")
        return self._finish(CallbackPath.NO_DATA, False, NO_DATA_MESSAGE)

    async def _exchange_code(self, code: str, state: Optional[str]) -> CallbackOutcome:
        # Single use: the stored state is gone whatever happens next
        saved_state = self.tab_storage.pop(OAUTH_STATE_KEY)
        if saved_state is None or state is None or not secrets.compare_digest(state.encode(), saved_state.encode()):
            logger.error("State mismatch - CSRF protection triggered")
            return self._finish(CallbackPath.CODE_EXCHANGE, False, STATE_MISMATCH_MESSAGE)

        data = await self.client.exchange_oauth_code(code, state)
        if not (data.get("success") and data.get("token")):
            logger.error(f"Backend auth failed: {data.get('message')}")
            message = data.get("message") or "Google authentication failed"
            return self._finish(CallbackPath.CODE_EXCHANGE, False, message)

        try:
            await self.context.set_token_and_refresh(data["token"])
        except SessionError as e:
            logger.error(f"Failed to set token and refresh user: {e}")
            return self._finish(CallbackPath.CODE_EXCHANGE, False, "Authentication failed. Please try again.")

        return self._finish(CallbackPath.CODE_EXCHANGE, True, "Successfully logged in with Google!")

    def _finish(self, path: CallbackPath, success: bool, message: str) -> CallbackOutcome:
        outcome = CallbackOutcome(
            path=path,
            success=success,
            message=message,
            redirect_to=HOME_PATH if success else LOGIN_PATH,
        )
        self.outcome = outcome
        if not self.attached:
            logger.info(f"Callback view gone, dropping outcome ({path.value})")
            return outcome

        if success:
            self.notifier.success(message)
        else:
            self.notifier.error(message)
        self.context.go(outcome.redirect_to)
        return outcome
