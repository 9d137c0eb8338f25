import os
from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_database_url() -> str:
    """Get database URL, converting postgres format to asyncpg if needed"""
    url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///notifier.db")

    # convert postgresql:// to postgresql+asyncpg:// for async support
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)

    return url


DATABASE_URL = get_database_url()

ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_TOKEN_URI = os.getenv("GOOGLE_TOKEN_URI", "https://oauth2.googleapis.com/token")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
AI_COMPOSER_ENABLED = _get_bool("AI_COMPOSER_ENABLED")

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Australia/Brisbane")
DEFAULT_SEND_TIME = os.getenv("DEFAULT_SEND_TIME", "07:00")

TICK_INTERVAL_MINUTES = int(os.getenv("TICK_INTERVAL_MINUTES", "60"))
MAX_CONCURRENT_DISPATCHES = int(os.getenv("MAX_CONCURRENT_DISPATCHES", "5"))
DELIVERY_WINDOW_HOURS = int(os.getenv("DELIVERY_WINDOW_HOURS", "24"))
TOKEN_REFRESH_MARGIN_MINUTES = 5
DELIVERY_HISTORY_LIMIT = int(os.getenv("DELIVERY_HISTORY_LIMIT", "100"))

JOIN_CODE_TTL_MINUTES = int(os.getenv("JOIN_CODE_TTL_MINUTES", "1440"))  # 24 hours
JOIN_CODE_SWEEP_MINUTES = 5

# timeouts in seconds for each external call
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "15"))
AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "20"))
SMS_TIMEOUT = float(os.getenv("SMS_TIMEOUT", "10"))


def is_twilio_configured() -> bool:
    return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER)


def is_ai_configured() -> bool:
    return bool(AI_COMPOSER_ENABLED and OPENAI_API_KEY)
