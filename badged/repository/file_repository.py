"""SQLite repository for file-based caching."""

import json
import sqlite3
import logging
from typing import Any, Optional

from pydantic import ValidationError

from badged.config.settings import Settings
from badged.repository.base_repository import CacheRepository, CacheUnavailableError
from badged.schema.cache import SingleReleaseRecord, TotalRecord, parse_record

logger = logging.getLogger(__name__)


class FileRepository(CacheRepository):
    """SQLite-based repository for caching when Redis is unavailable."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.db_path = settings.cache_file_path
        self._init_db()

    def _init_db(self) -> None:
        """Initialize SQLite database."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS downloads (
                    key TEXT PRIMARY KEY,
                    document TEXT NOT NULL
                )
                """
            )
            conn.commit()

    async def find_one(
        self, key: str
    ) -> Optional[SingleReleaseRecord | TotalRecord]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT document FROM downloads WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"Error reading {key} from SQLite: {e}") from e

        if not row:
            return None

        try:
            return parse_record(row[0])
        except ValidationError as e:
            raise CacheUnavailableError(f"Corrupt record for {key}: {e}") from e

    async def insert_one(self, record: SingleReleaseRecord | TotalRecord) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO downloads (key, document) VALUES (?, ?)",
                    (record.key, record.model_dump_json()),
                )
                conn.commit()
                return cursor.rowcount == 1
        except sqlite3.Error as e:
            logger.error(f"Error inserting {record.key} into SQLite: {e}")
            return False

    async def update_one(self, key: str, fields: dict[str, Any]) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT document FROM downloads WHERE key = ?", (key,)
                ).fetchone()
                if not row:
                    return False

                document = json.loads(row[0])
                document.update(fields)
                conn.execute(
                    "UPDATE downloads SET document = ? WHERE key = ?",
                    (json.dumps(document), key),
                )
                conn.commit()
                return True
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Error updating {key} in SQLite: {e}")
            return False

    async def disconnect(self) -> None:
        pass
