import os

from dotenv import load_dotenv

load_dotenv()

# ==========================
# Help Scout
# ==========================
HS_SECRET = os.getenv("HS_SECRET", "")          # webhook signing secret
HS_APP_ID = os.getenv("HS_APP_ID", "")
HS_APP_SECRET = os.getenv("HS_APP_SECRET", "")

HS_AUTH_ENDPOINT = os.getenv("HS_AUTH_ENDPOINT", "https://api.helpscout.net/v2/oauth2/token")
HS_API_BASE = os.getenv("HS_API_BASE", "https://api.helpscout.net/v2")
HS_DASHBOARD_BASE = os.getenv("HS_DASHBOARD_BASE", "https://secure.helpscout.net/conversation")

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "20"))

# ==========================
# Service
# ==========================
DB_PATH = os.getenv("DB_PATH", "./data/reopener.db")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Unsigned webhooks are rejected unless explicitly allowed
ALLOW_UNSIGNED_WEBHOOKS = os.getenv("ALLOW_UNSIGNED_WEBHOOKS", "false").lower() == "true"

# Shared secret for /jobs/* (empty disables the endpoint)
JOBS_SECRET = os.getenv("JOBS_SECRET", "")

# ==========================
# Reconciliation
# ==========================
RECONCILE_CRON_HOURS = os.getenv("RECONCILE_CRON_HOURS", "*/3")
RECONCILE_TIMEOUT_SECONDS = float(os.getenv("RECONCILE_TIMEOUT_SECONDS", "600"))
REOPEN_MAX_ATTEMPTS = int(os.getenv("REOPEN_MAX_ATTEMPTS", "5"))
REOPEN_RETRY_BASE_SECONDS = int(os.getenv("REOPEN_RETRY_BASE_SECONDS", "3600"))


def missing_settings() -> list[str]:
    """Names of required settings that are empty."""
    required = {
        "HS_SECRET": HS_SECRET,
        "HS_APP_ID": HS_APP_ID,
        "HS_APP_SECRET": HS_APP_SECRET,
    }
    return [name for name, value in required.items() if not value]
