"""
Pipeline configuration -- endpoint, identity headers, timeouts, storage path.

Everything the request pipeline needs that is not the API key or model.
The key and model belong to the settings store (storage/settings.py) and are
re-read on every submission; this module only holds process-wide defaults.

All values can be overridden from the environment:

    MESSAGE_CLEARANCE_API_URL       Chat-completion endpoint
    MESSAGE_CLEARANCE_APP_URL       Sent as HTTP-Referer
    MESSAGE_CLEARANCE_APP_TITLE     Sent as X-Title
    MESSAGE_CLEARANCE_TIMEOUT_MS    Per-attempt timeout in milliseconds
    MESSAGE_CLEARANCE_MAX_RETRIES   Attempts per analysis
    MESSAGE_CLEARANCE_DB_PATH       SQLite file for settings and history
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .security.validators import ValidationError, validate_api_url

logger = logging.getLogger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_APP_URL = "https://messageclearance.app"
DEFAULT_APP_TITLE = "MessageClearance"

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_RETRIES = 3
DEFAULT_DB_PATH = Path("data/message_clearance.db")

MAX_MESSAGE_LENGTH = 10_000
TEMPERATURE = 0.3
MAX_TOKENS = 2000
MAX_HISTORY_ITEMS = 50

API_KEY_PREFIX = "sk-or-"
API_KEY_ENV_VAR = "OPENROUTER_API_KEY"

DEFAULT_MODEL = "anthropic/claude-3.5-sonnet"

# Ordered by recommendation (best balance first).
AVAILABLE_MODELS: dict[str, dict[str, str]] = {
    "anthropic/claude-3.5-sonnet": {
        "name": "Claude 3.5 Sonnet",
        "description": "Best balance of quality and speed",
        "tier": "recommended",
    },
    "anthropic/claude-3-haiku": {
        "name": "Claude 3 Haiku",
        "description": "Fast and affordable",
        "tier": "fast",
    },
    "openai/gpt-4o": {
        "name": "GPT-4o",
        "description": "OpenAI flagship model",
        "tier": "premium",
    },
    "openai/gpt-4o-mini": {
        "name": "GPT-4o Mini",
        "description": "Fast OpenAI model",
        "tier": "fast",
    },
}


@dataclass
class PipelineConfig:
    """Process-wide pipeline settings. Read-only once handed to the pipeline."""

    api_url: str = OPENROUTER_API_URL
    app_url: str = DEFAULT_APP_URL
    app_title: str = DEFAULT_APP_TITLE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)


def _int_from_env(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[Config] {name}={raw!r} is not an integer, using {default}")
        return default
    if value < minimum:
        logger.warning(f"[Config] {name}={value} is below {minimum}, using {default}")
        return default
    return value


def _url_from_env(name: str, default: str) -> str:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return validate_api_url(raw, field_name=name)
    except ValidationError as e:
        logger.warning(f"[Config] {e}, using {default}")
        return default


def load_config() -> PipelineConfig:
    """Build a PipelineConfig from environment variables with safe defaults."""
    db_path = os.environ.get("MESSAGE_CLEARANCE_DB_PATH", "").strip()
    return PipelineConfig(
        api_url=_url_from_env("MESSAGE_CLEARANCE_API_URL", OPENROUTER_API_URL),
        app_url=os.environ.get("MESSAGE_CLEARANCE_APP_URL", "").strip() or DEFAULT_APP_URL,
        app_title=os.environ.get("MESSAGE_CLEARANCE_APP_TITLE", "").strip() or DEFAULT_APP_TITLE,
        timeout_ms=_int_from_env("MESSAGE_CLEARANCE_TIMEOUT_MS", DEFAULT_TIMEOUT_MS, 1),
        max_retries=_int_from_env("MESSAGE_CLEARANCE_MAX_RETRIES", DEFAULT_MAX_RETRIES, 0),
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
    )
