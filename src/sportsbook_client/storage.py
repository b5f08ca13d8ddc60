import json
import sqlite3
import logging
import time
from datetime import datetime
from typing import Optional, Dict, Any

import pytz
from jose import jwt, JWTError

from .models import Session, User

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_KEY = "auth_user"


def token_expiry(token: str) -> Optional[float]:
    """Return the token's `exp` claim as a unix timestamp, or None if it can't be read."""
    try:
        claims = jwt.get_unverified_claims(token)
    except (JWTError, ValueError, TypeError):
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return float(exp)


def is_token_expired(token: str, now: Optional[float] = None) -> bool:
    exp = token_expiry(token)
    if exp is None:
        return True
    return exp < (now if now is not None else time.time())


class TokenStore:
    """
    Persists the bearer token and the cached user record across runs.

    Both values live in one key/value table and are always written in the
    same transaction, so a token is never left behind without its user.
    """

    def __init__(self, db_path: str = "session.db"):
        self.db_path = db_path
        self._init_db()

    def _get_connection(self):
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _init_db(self):
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS local_storage (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    ) WITHOUT ROWID
                """)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to init DB: {e}")

    def load(self) -> Optional[Session]:
        """
        Return the stored session, or None.

        Expired or undecodable tokens clear storage. A token without a cached
        user is returned with user=None so the caller can fetch the profile.
        """
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT key, value, updated_at FROM local_storage WHERE key IN (?, ?)",
                    (TOKEN_KEY, USER_KEY),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error loading session: {e}")
            return None

        values: Dict[str, Any] = {key: (value, updated_at) for key, value, updated_at in rows}
        if TOKEN_KEY not in values:
            if USER_KEY in values:
                # A user without a token is not a session
                self.clear()
            return None

        token = values[TOKEN_KEY][0]
        if is_token_expired(token):
            logger.info("Stored token is expired or malformed, clearing session")
            self.clear()
            return None

        user = None
        saved_at = None
        if USER_KEY in values:
            raw_user, updated_at = values[USER_KEY]
            try:
                data = json.loads(raw_user)
                if not isinstance(data, dict):
                    raise ValueError(f"expected an object, got {type(data).__name__}")
                user = User.from_dict(data)
                saved_at = datetime.fromisoformat(updated_at)
            except (ValueError, TypeError) as e:
                logger.warning(f"Discarding unreadable cached user: {e}")
                user = None

        return Session(token=token, user=user, saved_at=saved_at)

    def save(self, token: str, user: Optional[User]):
        now = datetime.now(pytz.utc).isoformat()
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO local_storage (key, value, updated_at) VALUES (?, ?, ?)",
                    (TOKEN_KEY, token, now),
                )
                if user is None:
                    conn.execute("DELETE FROM local_storage WHERE key = ?", (USER_KEY,))
                else:
                    conn.execute(
                        "INSERT OR REPLACE INTO local_storage (key, value, updated_at) VALUES (?, ?, ?)",
                        (USER_KEY, json.dumps(user.to_dict()), now),
                    )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error saving session: {e}")

    def save_token(self, token: str):
        """Store a new token and drop any user cached for a previous one."""
        self.save(token, None)

    def save_user(self, user: User):
        """Replace the cached user while keeping the current token."""
        now = datetime.now(pytz.utc).isoformat()
        try:
            with self._get_connection() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM local_storage WHERE key = ?", (TOKEN_KEY,)
                ).fetchone()
                if exists is None:
                    logger.warning("Refusing to cache a user without a token")
                    return
                conn.execute(
                    "INSERT OR REPLACE INTO local_storage (key, value, updated_at) VALUES (?, ?, ?)",
                    (USER_KEY, json.dumps(user.to_dict()), now),
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error caching user: {e}")

    def clear(self):
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "DELETE FROM local_storage WHERE key IN (?, ?)", (TOKEN_KEY, USER_KEY)
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error clearing session: {e}")


class TabStorage:
    """Short-lived values scoped to one running context (the OAuth CSRF state)."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str):
        self._values[key] = value

    def pop(self, key: str) -> Optional[str]:
        return self._values.pop(key, None)
