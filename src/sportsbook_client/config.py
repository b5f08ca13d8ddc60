import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Backend collaborators
AUTH_SERVICE_URL = os.getenv("AUTH_SERVICE_URL", "http://localhost:3001")
FIXTURES_SERVICE_URL = os.getenv("FIXTURES_SERVICE_URL", "http://localhost:3002")
WALLET_SERVICE_URL = os.getenv("WALLET_SERVICE_URL", "http://localhost:3004/api")
BETS_SERVICE_URL = os.getenv("BETS_SERVICE_URL", "http://localhost:3005/api")
GATEWAY_URL = os.getenv("GATEWAY_URL", "http://localhost:8000")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))

# Persistence
# Use absolute path anchored to this file location
BASE_DIR = Path(__file__).resolve().parent.parent.parent
DATA_DIR = BASE_DIR / "data"

STATE_DB_PATH = os.getenv("STATE_DB_PATH", str(DATA_DIR / "session.db"))

# Session policy
# A cached user older than this is dropped when the profile refresh fails
CACHED_USER_MAX_AGE_HOURS = int(os.getenv("CACHED_USER_MAX_AGE_HOURS", "24"))
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@admin.com")

# Routing
LOGIN_PATH = "/login"
CALLBACK_PATH = "/auth/callback"
HOME_PATH = "/"
PUBLIC_PATHS = (LOGIN_PATH, CALLBACK_PATH)

# OAuth
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
OAUTH_REDIRECT_URI = os.getenv("OAUTH_REDIRECT_URI", "http://localhost:3000" + CALLBACK_PATH)
OAUTH_SCOPE = "openid email profile"

# Background refreshers (health checks, live fixtures)
POLL_INTERVAL_SECONDS = int(os.getenv("POLL_INTERVAL_SECONDS", "30"))
