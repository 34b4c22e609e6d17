# cli/core/config.py
from pathlib import Path
import os

# Base URL of the HMS Auth API
BASE_URL = os.environ.get("HMS_URL", "http://localhost:8000")

# Name of the refresh cookie set by the API
REFRESH_COOKIE_NAME = os.environ.get("HMS_REFRESH_COOKIE", "refreshToken")

# Local folder for the CLI session
APP_DIR = Path(os.environ.get("HMS_HOME", Path.home() / ".hms"))

# Access token + refresh cookie of the current session
SESSION_FILE = APP_DIR / "session.json"

REQUEST_TIMEOUT = 10
