import os
import logging
from urllib.parse import urlparse

from utils.env import get_env_str, get_env_bool, get_env_int, get_env_float

logger = logging.getLogger(__name__)

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# -----------------------------------------------------------------------------
# Dotenv loading (LOCAL ONLY)
# -----------------------------------------------------------------------------
# - Deployed stages are configured via real environment variables.
# - Tests must not implicitly ingest a developer's repo-root .env.
_FLASK_ENV_EARLY = (os.getenv("FLASK_ENV") or "").strip().lower()

if _FLASK_ENV_EARLY not in {"test", "testing"}:
    from dotenv import load_dotenv
    load_dotenv(dotenv_path=os.path.join(BASE_DIR, ".env"), override=False)

# -----------------------------------------------------------------------------
# Environment / Stage
# -----------------------------------------------------------------------------
def _normalize_stage(raw: str) -> str:
    raw = (raw or "").strip().lower()
    if raw in {"prod", "production"}:
        return "production"
    if raw in {"stage", "staging"}:
        return "staging"
    if raw in {"test", "testing"}:
        return "test"
    return "dev"


FLASK_ENV = (os.getenv("FLASK_ENV", "development") or "development").strip().lower()
APP_STAGE = _normalize_stage(os.getenv("APP_STAGE", "dev"))

IS_TEST = APP_STAGE == "test" or FLASK_ENV in {"test", "testing"}
IS_STAGING = APP_STAGE == "staging"
IS_PRODUCTION = APP_STAGE == "production"
IS_SECURE_ENV = IS_STAGING or IS_PRODUCTION

DEBUG = FLASK_ENV != "production" and not IS_PRODUCTION

# -----------------------------------------------------------------------------
# Database (Postgres-only)
# -----------------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    if os.environ.get("ALLOW_MISSING_DB"):
        logger.warning("DATABASE_URL missing but ALLOW_MISSING_DB set. Using placeholder.")
        DATABASE_URL = "postgresql://localhost/unconfigured"
    else:
        raise RuntimeError("DATABASE_URL environment variable is required.")

# Normalize postgres:// -> postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)
    os.environ["DATABASE_URL"] = DATABASE_URL

if not DATABASE_URL.startswith("postgresql://"):
    # Never include credentials in errors/logs.
    try:
        p = urlparse(DATABASE_URL)
        got = f"{p.scheme}://{p.hostname}" if p.scheme else "INVALID_URL"
    except ValueError:
        got = "INVALID_URL"
    raise ValueError(
        f"CRITICAL: DATABASE_URL must be a PostgreSQL URL (postgresql://...). Got: {got}."
    )

# -----------------------------------------------------------------------------
# Secrets
# -----------------------------------------------------------------------------
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    if IS_SECURE_ENV:
        raise ValueError(f"SECRET_KEY must be set in {APP_STAGE} environment.")
    SECRET_KEY = "dev-secret-key-change-this"
    logger.warning("[Config] WARNING: Using default SECRET_KEY for development. DO NOT use in real environments!")

CRON_SECRET = get_env_str("CRON_SECRET")
ADMIN_API_TOKEN = get_env_str("ADMIN_API_TOKEN")

# -----------------------------------------------------------------------------
# Printful
# -----------------------------------------------------------------------------
def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


PRINTFUL_API_KEY = get_env_str("PRINTFUL_API_KEY")
PRINTFUL_API_BASE_URL = _strip_trailing_slash(
    get_env_str("PRINTFUL_API_BASE_URL", default="https://api.printful.com")
)
PRINTFUL_API_LOCATION = get_env_str("PRINTFUL_API_LOCATION", default="us-east")
PRINTFUL_SANDBOX_MODE = get_env_bool("PRINTFUL_SANDBOX_MODE", default=not IS_PRODUCTION)
PRINTFUL_WEBHOOK_SECRET = get_env_str("PRINTFUL_WEBHOOK_SECRET")

PRINTFUL_MAX_RETRIES = get_env_int("PRINTFUL_MAX_RETRIES", default=3, minimum=0)
PRINTFUL_REQUEST_TIMEOUT = get_env_float("PRINTFUL_REQUEST_TIMEOUT", default=30.0)

# Mockup generator limit: N calls per rolling window.
PRINTFUL_RATE_LIMIT = get_env_int("PRINTFUL_RATE_LIMIT", default=2, minimum=1)
PRINTFUL_RATE_WINDOW_SECONDS = get_env_float("PRINTFUL_RATE_WINDOW_SECONDS", default=60.0)

MOCKUP_DEFAULT_FILE_URL = get_env_str(
    "MOCKUP_DEFAULT_FILE_URL",
    default="https://files.cdn.printful.com/upload/generator/a7g2-mockup-generator-4d0f4.png",
)

MIN_HOURS_BETWEEN_SYNCS = get_env_float("MIN_HOURS_BETWEEN_SYNCS", default=12.0)

if IS_SECURE_ENV:
    for _name, _value in (
        ("PRINTFUL_API_KEY", PRINTFUL_API_KEY),
        ("PRINTFUL_WEBHOOK_SECRET", PRINTFUL_WEBHOOK_SECRET),
        ("CRON_SECRET", CRON_SECRET),
    ):
        if not _value:
            raise ValueError(f"{_name} must be set in {APP_STAGE} environment.")

    if IS_STAGING and not PRINTFUL_SANDBOX_MODE:
        logger.warning("[Config] WARNING: PRINTFUL_SANDBOX_MODE is off in staging. Orders will be real.")
elif not PRINTFUL_API_KEY:
    logger.warning("[Config] WARNING: PRINTFUL_API_KEY is not set. Printful calls will fail with missing_api_key.")

# -----------------------------------------------------------------------------
# Proxy
# -----------------------------------------------------------------------------
TRUST_PROXY_HEADERS = get_env_bool("TRUST_PROXY_HEADERS", default=False)
PROXY_FIX_NUM_PROXIES = get_env_int("PROXY_FIX_NUM_PROXIES", default=1, minimum=1)

MAX_CONTENT_LENGTH = 2 * 1024 * 1024
