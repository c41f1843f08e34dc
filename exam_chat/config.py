# exam_chat/config.py
import os
from dataclasses import dataclass

# Load environment variables from .env (if present)
from dotenv import load_dotenv

from .errors import ConfigurationError

REQUIRED_VARS = ("OPENAI_API_KEY", "DIRECTUS_URL", "DIRECTUS_TOKEN", "ASSISTANT_ID")

# Directus never gets asked for more rows than this, whatever the model requests.
RESULT_LIMIT = 10


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    directus_url: str
    directus_token: str
    assistant_id: str
    poll_interval: float = 1.0
    max_wait: float = 30.0
    request_timeout: float = 20.0
    result_limit: int = RESULT_LIMIT
    log_level: str = "INFO"

    def masked_key(self) -> str:
        key = self.openai_api_key
        if len(key) <= 13:
            return "***"
        return key[:7] + "..." + key[-6:]


def _positive_float(environ, name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(environ=None) -> Settings:
    """
    Build Settings from the environment.
    Raises ConfigurationError listing every missing required variable.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    missing = [name for name in REQUIRED_VARS if not environ.get(name)]
    if missing:
        raise ConfigurationError(
            "Missing required environment variables: " + ", ".join(missing)
        )

    return Settings(
        openai_api_key=environ["OPENAI_API_KEY"],
        directus_url=environ["DIRECTUS_URL"].rstrip("/"),
        directus_token=environ["DIRECTUS_TOKEN"],
        assistant_id=environ["ASSISTANT_ID"],
        poll_interval=_positive_float(environ, "RUN_POLL_INTERVAL", 1.0),
        max_wait=_positive_float(environ, "RUN_MAX_WAIT", 30.0),
        request_timeout=_positive_float(environ, "DIRECTUS_TIMEOUT", 20.0),
        log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
    )
