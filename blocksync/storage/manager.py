"""
Storage manager for Blocksync.

This module implements the key-value persistence used by the application
on top of DuckDB: every top-level key (``blocks``, ``settings``, ...) is
stored as a JSON document. It also keeps an audit trail of sync runs.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from ..config import Settings
from ..models import MergeSummary, TimeBlock
from ..models.blocks import ensure_utc


class StorageManager:
    """
    Manages the DuckDB database holding application state and sync history.
    """

    def __init__(self, db_path: str = "blocksync.db"):
        """
        Initialize the storage manager.

        Args:
            db_path: Path to the DuckDB database file
        """
        self.db_path = db_path
        self.connection = None

    def connect(self):
        """Establish connection to the database."""
        self.connection = duckdb.connect(self.db_path)

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def _require_connection(self):
        if not self.connection:
            raise RuntimeError("Database connection not established")
        return self.connection

    def initialize_database(self):
        """
        Create all necessary tables if they don't exist.
        """
        connection = self._require_connection()

        connection.execute("""
            CREATE TABLE IF NOT EXISTS app_state (
                key VARCHAR PRIMARY KEY,
                value VARCHAR NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        connection.execute("CREATE SEQUENCE IF NOT EXISTS sync_run_id_seq;")
        connection.execute("""
            CREATE TABLE IF NOT EXISTS sync_runs (
                run_id BIGINT PRIMARY KEY DEFAULT nextval('sync_run_id_seq'),
                started_at TIMESTAMP NOT NULL,
                success BOOLEAN NOT NULL,
                downloaded INTEGER,
                created INTEGER,
                identical INTEGER,
                differences INTEGER,
                error_message TEXT,
                execution_time_ms INTEGER
            )
        """)
        logging.info(f"Storage initialized at {self.db_path}")

    def read(self) -> Dict[str, Any]:
        """
        Read the whole persisted state.

        Returns:
            Dictionary of key to decoded JSON value (empty when nothing is stored)
        """
        connection = self._require_connection()
        rows = connection.execute("SELECT key, value FROM app_state ORDER BY key").fetchall()
        return {row[0]: json.loads(row[1]) for row in rows}

    def write(self, data: Dict[str, Any]) -> None:
        """
        Persist every key of ``data``, replacing previous values.

        Keys not present in ``data`` are left untouched.
        """
        connection = self._require_connection()
        now = datetime.now()
        for key, value in data.items():
            connection.execute("""
                INSERT OR REPLACE INTO app_state (key, value, updated_at)
                VALUES (?, ?, ?)
            """, [key, json.dumps(value, ensure_ascii=False), now])

    def load_blocks(self) -> List[TimeBlock]:
        raw_blocks = self.read().get("blocks") or []
        return [TimeBlock.model_validate(raw) for raw in raw_blocks]

    def save_blocks(self, blocks: Sequence[TimeBlock]) -> None:
        self.write({"blocks": [block.to_storage() for block in blocks]})

    def load_settings(self) -> Optional[Settings]:
        raw = self.read().get("settings")
        return Settings.model_validate(raw) if raw else None

    def save_settings(self, settings: Settings) -> None:
        """Persist settings, without the API key."""
        data = settings.model_dump(mode="json", by_alias=True, exclude={"time_log_api_key"})
        self.write({"settings": data})

    def log_sync_run(
        self,
        started_at: datetime,
        success: bool,
        summary: Optional[MergeSummary] = None,
        error_message: Optional[str] = None,
        execution_time_ms: Optional[int] = None,
    ) -> Optional[int]:
        """
        Record the outcome of a sync run.

        Returns:
            The id of the new run record
        """
        connection = self._require_connection()
        started_utc = ensure_utc(started_at).astimezone(timezone.utc).replace(tzinfo=None)
        result = connection.execute("""
            INSERT INTO sync_runs (
                started_at, success, downloaded, created, identical,
                differences, error_message, execution_time_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING run_id
        """, [
            started_utc,
            success,
            summary.downloaded if summary else None,
            summary.created if summary else None,
            summary.identical if summary else None,
            summary.differences if summary else None,
            error_message,
            execution_time_ms,
        ]).fetchone()
        return result[0] if result else None

    def get_sync_runs(self, limit: Optional[int] = None) -> List[Dict]:
        """
        Retrieve recorded sync runs, newest first.
        """
        connection = self._require_connection()
        query = """
            SELECT run_id, started_at, success, downloaded, created, identical,
                   differences, error_message, execution_time_ms
            FROM sync_runs
            ORDER BY started_at DESC, run_id DESC
        """
        if limit:
            query += f" LIMIT {int(limit)}"

        results = connection.execute(query).fetchall()
        return [
            {
                "run_id": row[0],
                "started_at": row[1].replace(tzinfo=timezone.utc) if row[1] else None,
                "success": row[2],
                "downloaded": row[3],
                "created": row[4],
                "identical": row[5],
                "differences": row[6],
                "error_message": row[7],
                "execution_time_ms": row[8],
            }
            for row in results
        ]

    def get_last_sync_date(self) -> Optional[datetime]:
        """Start time (UTC) of the latest successful sync, if any."""
        connection = self._require_connection()
        result = connection.execute(
            "SELECT max(started_at) FROM sync_runs WHERE success = true"
        ).fetchone()
        if result and result[0]:
            return result[0].replace(tzinfo=timezone.utc)
        return None
