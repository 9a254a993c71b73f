"""
HistoryStore -- append-only record of completed analyses.

The session only ever calls add(). Trimming is this store's job: after every
insert anything beyond the newest MAX_HISTORY_ITEMS rows is deleted, oldest
first.

Rows whose stored result no longer parses are skipped with a warning rather
than breaking the whole listing.
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from ..config import DEFAULT_DB_PATH, MAX_HISTORY_ITEMS
from ..models import AnalysisResult, HistoryEntry
from .schema import get_connection, initialize_schema

logger = logging.getLogger(__name__)


class HistoryStore:
    """
    Bounded analysis history in the local SQLite file.

    Usage:
        history = HistoryStore(db_path)
        history.add(HistoryEntry(original_message=text, result=result, model=model))
        for entry in history.list():
            print(entry.timestamp, entry.result.verdict)
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, max_items: int = MAX_HISTORY_ITEMS):
        self._db_path = db_path
        self._max_items = max_items
        initialize_schema(db_path)

    @property
    def max_items(self) -> int:
        return self._max_items

    def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Append one entry, then drop the oldest beyond the cap."""
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """INSERT INTO history (id, timestamp, original_message, result_json, model)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    entry.id,
                    entry.timestamp,
                    entry.original_message,
                    json.dumps(entry.result.to_wire()),
                    entry.model,
                ),
            )
            cursor = conn.execute(
                """DELETE FROM history WHERE seq NOT IN
                   (SELECT seq FROM history ORDER BY seq DESC LIMIT ?)""",
                (self._max_items,),
            )
            conn.commit()
        finally:
            conn.close()

        if cursor.rowcount > 0:
            logger.debug(f"[History] Trimmed {cursor.rowcount} oldest entries")
        logger.info(f"[History] Added entry {entry.id}")
        return entry

    def list(self) -> list[HistoryEntry]:
        """All entries, oldest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute("SELECT * FROM history ORDER BY seq ASC").fetchall()
        finally:
            conn.close()

        entries = []
        for row in rows:
            entry = self._entry_from_row(row)
            if entry is not None:
                entries.append(entry)
        return entries

    def get(self, entry_id: str) -> HistoryEntry | None:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute("SELECT * FROM history WHERE id = ?", (entry_id,)).fetchone()
        finally:
            conn.close()
        return self._entry_from_row(row) if row else None

    def remove(self, entry_id: str) -> bool:
        conn = get_connection(self._db_path)
        try:
            cursor = conn.execute("DELETE FROM history WHERE id = ?", (entry_id,))
            conn.commit()
            removed = cursor.rowcount > 0
        finally:
            conn.close()
        if removed:
            logger.info(f"[History] Removed entry {entry_id}")
        return removed

    def clear(self) -> int:
        """Delete every entry. Returns how many were removed."""
        conn = get_connection(self._db_path)
        try:
            cursor = conn.execute("DELETE FROM history")
            conn.commit()
            count = cursor.rowcount
        finally:
            conn.close()
        logger.info(f"[History] Cleared {count} entries")
        return count

    def count(self) -> int:
        conn = get_connection(self._db_path)
        try:
            return conn.execute("SELECT COUNT(*) FROM history").fetchone()[0]
        finally:
            conn.close()

    def _entry_from_row(self, row) -> HistoryEntry | None:
        try:
            result = AnalysisResult.model_validate(json.loads(row["result_json"]))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning(f"[History] Skipping corrupt entry {row['id']}: {e}")
            return None
        return HistoryEntry(
            id=row["id"],
            timestamp=row["timestamp"],
            original_message=row["original_message"],
            result=result,
            model=row["model"],
        )
