"""
Local persistence -- settings (API key, model) and bounded analysis history.

Both stores share one SQLite file (config.DEFAULT_DB_PATH by default).
"""

from .history import HistoryStore
from .schema import get_connection, initialize_schema
from .settings import SettingsStore, mask_key
