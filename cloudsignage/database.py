"""
Database module for cloudsignage.

Handles SQLite database initialization, schema creation, and connection management.
Documents for every collection live in one table as JSON; a per-collection
revision counter lets other processes sharing the file notice changes.
"""

import json
import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import ConfigEntry


def default_data_directory() -> Path:
    """Return ~/.cloudsignage (or $CLOUDSIGNAGE_STATE_DIR), creating it if needed."""
    state_dir = os.environ.get("CLOUDSIGNAGE_STATE_DIR")
    path = Path(state_dir) if state_dir else Path.home() / ".cloudsignage"
    path.mkdir(parents=True, exist_ok=True)
    return path


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses $CLOUDSIGNAGE_DB
                or ~/.cloudsignage/cloudsignage.db
        """
        self.logger = logging.getLogger(__name__)

        if db_path is None:
            db_path = os.environ.get("CLOUDSIGNAGE_DB")
        if db_path is None:
            db_path = str(default_data_directory() / "cloudsignage.db")

        self.db_path = db_path
        self._ensure_schema()
        self.logger.info("Database initialized at %s", self.db_path)

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = self.get_connection()
        try:
            cursor = conn.cursor()

            # One row per document; seq keeps insertion order stable across upserts
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (collection, doc_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS revisions (
                    collection TEXT PRIMARY KEY,
                    revision INTEGER NOT NULL DEFAULT 0
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_collection
                ON documents(collection, seq)
            """)

            conn.commit()
        finally:
            conn.close()
        self.logger.debug("Database schema created/verified")

    def get_connection(self):
        """
        Get a new database connection.

        Each thread should get its own connection. Caller is responsible
        for closing the connection when done.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def close(self):
        """Close database connection (no-op since we use per-call connections)."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class DocumentRepository:
    """Reads and writes JSON documents grouped by collection."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT data_json FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        finally:
            conn.close()
        return json.loads(row["data_json"]) if row else None

    def list(self, collection: str) -> List[Dict[str, Any]]:
        """Return every document in the collection, in insertion order."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT data_json FROM documents WHERE collection = ? ORDER BY seq",
                (collection,),
            ).fetchall()
        finally:
            conn.close()
        return [json.loads(row["data_json"]) for row in rows]

    def upsert(self, collection: str, doc_id: str, data_json: str) -> int:
        """Insert or replace a document. Returns the collection's new revision."""
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO documents (collection, doc_id, data_json)
                VALUES (?, ?, ?)
                ON CONFLICT (collection, doc_id) DO UPDATE SET
                    data_json = excluded.data_json,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (collection, doc_id, data_json),
            )
            revision = self._bump_revision(conn, collection)
            conn.commit()
            return revision
        finally:
            conn.close()

    def update_if_exists(self, collection: str, doc_id: str, merge) -> Optional[int]:
        """
        Read-modify-write a document inside one transaction.

        Args:
            merge: Callable taking the current document dict and returning the
                new JSON string.

        Returns:
            New revision, or None if the document does not exist
        """
        conn = self.database.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT data_json FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
            if not row:
                conn.rollback()
                return None
            data_json = merge(json.loads(row["data_json"]))
            conn.execute(
                """
                UPDATE documents SET data_json = ?, updated_at = CURRENT_TIMESTAMP
                WHERE collection = ? AND doc_id = ?
                """,
                (data_json, collection, doc_id),
            )
            revision = self._bump_revision(conn, collection)
            conn.commit()
            return revision
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def delete(self, collection: str, doc_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
            deleted = cursor.rowcount > 0
            if deleted:
                self._bump_revision(conn, collection)
            conn.commit()
            return deleted
        finally:
            conn.close()

    def revisions(self) -> Dict[str, int]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute("SELECT collection, revision FROM revisions").fetchall()
        finally:
            conn.close()
        return {row["collection"]: row["revision"] for row in rows}

    def _bump_revision(self, conn, collection: str) -> int:
        conn.execute(
            """
            INSERT INTO revisions (collection, revision) VALUES (?, 1)
            ON CONFLICT (collection) DO UPDATE SET revision = revision + 1
            """,
            (collection,),
        )
        row = conn.execute(
            "SELECT revision FROM revisions WHERE collection = ?", (collection,)
        ).fetchone()
        return row["revision"]


class ConfigRepository:
    """Key/value configuration storage."""

    def __init__(self, database: Database):
        self.database = database

    def get(self, key: str) -> Optional[ConfigEntry]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT key, value, updated_at FROM config WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return ConfigEntry(key=row["key"], value=row["value"], updated_at=row["updated_at"])

    def get_all(self) -> List[ConfigEntry]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute("SELECT key, value, updated_at FROM config").fetchall()
        finally:
            conn.close()
        return [
            ConfigEntry(key=row["key"], value=row["value"], updated_at=row["updated_at"])
            for row in rows
        ]

    def set(self, key: str, value: str) -> bool:
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT (key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            conn.commit()
            return True
        finally:
            conn.close()

    def initialize_defaults(self, defaults: Dict[str, Any]):
        """Insert default values for keys that have never been set."""
        conn = self.database.get_connection()
        try:
            for key, value in defaults.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)",
                    (key, str(value)),
                )
            conn.commit()
        finally:
            conn.close()
