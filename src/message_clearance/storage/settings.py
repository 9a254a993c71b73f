"""
SettingsStore -- the API key and model selection, persisted locally.

The pipeline never writes here. The session holds a reference to the store
and re-reads `api_key` and `model` on every submission, so a key updated
between two analyses takes effect immediately.

Key resolution order:
  1. The stored key (set via `message-clearance key set`)
  2. The OPENROUTER_API_KEY environment variable

Security:
  - The key is never logged; use `masked_key` for display
  - A key without the sk-or- prefix is stored anyway, with a warning
"""

import logging
import os
from datetime import datetime
from pathlib import Path

from ..config import (
    API_KEY_ENV_VAR,
    API_KEY_PREFIX,
    AVAILABLE_MODELS,
    DEFAULT_DB_PATH,
    DEFAULT_MODEL,
)
from ..security.validators import (
    validate_in_choices,
    validate_not_empty,
    validate_prefix,
)
from .schema import get_connection, initialize_schema

logger = logging.getLogger(__name__)

API_KEY_SETTING = "api_key"
MODEL_SETTING = "selected_model"

MASK_CHAR = "•"


def mask_key(key: str) -> str:
    """First 8 and last 4 characters with bullets between; all bullets if short."""
    if not key:
        return ""
    if len(key) > 12:
        return f"{key[:8]}{MASK_CHAR * 16}{key[-4:]}"
    return MASK_CHAR * len(key)


class SettingsStore:
    """
    Key-value settings backed by the local SQLite file.

    Usage:
        settings = SettingsStore(db_path)
        settings.set_api_key("sk-or-v1-...")
        settings.masked_key   # "sk-or-v1••••••••••••••••abcd"
        settings.set_model("openai/gpt-4o")
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, use_env: bool = True):
        self._db_path = db_path
        self._use_env = use_env
        initialize_schema(db_path)

    # =========================================================================
    # RAW ACCESS
    # =========================================================================

    def get(self, key: str, default: str = "") -> str:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row["value"] if row else default

    def set(self, key: str, value: str) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                  updated_at = excluded.updated_at""",
                (key, value, datetime.now().isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> bool:
        conn = get_connection(self._db_path)
        try:
            cursor = conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # =========================================================================
    # API KEY
    # =========================================================================

    @property
    def api_key(self) -> str:
        stored = self.get(API_KEY_SETTING).strip()
        if stored:
            return stored
        if self._use_env:
            return os.environ.get(API_KEY_ENV_VAR, "").strip()
        return ""

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def masked_key(self) -> str:
        return mask_key(self.api_key)

    @property
    def is_valid_format(self) -> bool:
        return self.api_key.startswith(API_KEY_PREFIX)

    def set_api_key(self, key: str) -> None:
        """Store the key. A blank key removes the stored one."""
        key = (key or "").strip()
        if not key:
            self.clear_api_key()
            return
        validate_prefix(key, API_KEY_PREFIX, field_name="API key")
        self.set(API_KEY_SETTING, key)
        logger.info(f"[Settings] API key updated ({mask_key(key)})")

    def clear_api_key(self) -> bool:
        removed = self.delete(API_KEY_SETTING)
        if removed:
            logger.info("[Settings] API key removed")
        return removed

    # =========================================================================
    # MODEL
    # =========================================================================

    @property
    def model(self) -> str:
        return self.get(MODEL_SETTING, DEFAULT_MODEL) or DEFAULT_MODEL

    def set_model(self, model: str, allow_custom: bool = False) -> None:
        """Select a model. Unknown ids are rejected unless allow_custom."""
        model = validate_not_empty(model, field_name="model")
        if not allow_custom:
            validate_in_choices(model, list(AVAILABLE_MODELS), field_name="model")
        self.set(MODEL_SETTING, model)
        logger.info(f"[Settings] Model set to {model}")
