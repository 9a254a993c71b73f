"""
Local store schema -- one SQLite file for settings and analysis history.

Usage:
    initialize_schema(db_path)  # Creates tables if they don't exist
    get_connection(db_path)     # Returns a connection with WAL mode enabled

Settings are plain key/value rows. History rows keep the analysis result as
serialized JSON; `seq` gives a stable insertion order for trimming.
"""

import logging
import sqlite3
from pathlib import Path

from ..config import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
-- Settings: API key, selected model, preferences
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- History: completed analyses, newest kept, capped by the store
CREATE TABLE IF NOT EXISTS history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    timestamp TEXT NOT NULL,
    original_message TEXT NOT NULL,
    result_json TEXT NOT NULL,
    model TEXT NOT NULL
);
"""


def get_connection(db_path: Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode enabled."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Create the settings and history tables if they don't exist."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
        logger.debug(f"[Storage] Schema ready at {db_path}")
    finally:
        conn.close()
