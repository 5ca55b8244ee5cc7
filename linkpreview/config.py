import os
import secrets

# ------------------------------------------------------------------------------
# App
# ------------------------------------------------------------------------------
APP_TITLE = os.getenv("APP_TITLE", "LinkPreview")
SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")

DB_URL = os.getenv("DATABASE_URL") or os.getenv("DB_URL") or "sqlite:///./app.db"
IS_SQLITE = DB_URL.startswith("sqlite:")

GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "")

# ------------------------------------------------------------------------------
# Outbound fetch limits
# ------------------------------------------------------------------------------
PREVIEW_TIMEOUT_SEC = float(os.getenv("PREVIEW_TIMEOUT_SEC", "10"))
PREVIEW_MAX_REDIRECTS = int(os.getenv("PREVIEW_MAX_REDIRECTS", "5"))
PREVIEW_MAX_BYTES = int(os.getenv("PREVIEW_MAX_BYTES", "2000000"))
# Local rendering cap for title/description, not a protocol limit.
PREVIEW_FIELD_MAX_CHARS = int(os.getenv("PREVIEW_FIELD_MAX_CHARS", "300"))
PREVIEW_USER_AGENT = os.getenv(
    "PREVIEW_USER_AGENT",
    "Mozilla/5.0 (compatible; LinkPreviewBot/1.0; +https://github.com/linkpreview)",
)
