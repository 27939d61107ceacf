"""
SQLite storage for subtitle sets and their entries.
Thread-safe via check_same_thread=False + explicit locking.
"""

from __future__ import annotations

import sqlite3
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .models import SubtitleEntry, SubtitleSet

logger = logging.getLogger(__name__)

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS subtitle_sets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_filename TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS subtitles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    set_id INTEGER NOT NULL,
    idx INTEGER,
    timestamp TEXT NOT NULL,
    text TEXT NOT NULL,
    translated_text TEXT,
    FOREIGN KEY (set_id) REFERENCES subtitle_sets(id)
);

CREATE INDEX IF NOT EXISTS idx_subtitles_set_idx ON subtitles(set_id, idx);
"""

MEMORY = ":memory:"


class SubtitleStore:
    """SQLite wrapper owning subtitle sets and entries."""

    def __init__(self, db_path: Path | str = MEMORY):
        self.db_path = db_path
        if str(db_path) != MEMORY:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys=ON")
        if str(db_path) != MEMORY:
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(_CREATE_TABLES)
        self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    def ping(self) -> None:
        """Raise sqlite3.Error if the database is unusable."""
        with self._lock:
            self.conn.execute("SELECT 1").fetchone()

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> SubtitleEntry:
        return SubtitleEntry(
            index=row["idx"],
            timestamp=row["timestamp"],
            text=row["text"],
            translated_text=row["translated_text"],
            id=row["id"],
        )

    @staticmethod
    def _row_to_set(row: sqlite3.Row) -> SubtitleSet:
        return SubtitleSet(
            id=row["id"],
            original_filename=row["original_filename"],
            created_at=row["created_at"],
            total=row["total"],
        )

    # ── Sets ──────────────────────────────────────────────────────────

    def create_set(self, filename: str, entries: Sequence[SubtitleEntry]) -> SubtitleSet:
        """Insert a set and all its entries in one transaction."""
        created_at = self._now()
        with self._lock:
            try:
                cur = self.conn.execute(
                    "INSERT INTO subtitle_sets (original_filename, created_at) VALUES (?, ?)",
                    (filename, created_at),
                )
                set_id = cur.lastrowid
                self.conn.executemany(
                    """INSERT INTO subtitles (set_id, idx, timestamp, text, translated_text)
                       VALUES (?, ?, ?, ?, ?)""",
                    [(set_id, e.index, e.timestamp, e.text, e.translated_text)
                     for e in entries],
                )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise
        logger.info(f"Stored set {set_id} ({filename}) with {len(entries)} entries")
        return SubtitleSet(set_id, filename, created_at, len(entries))

    def get_set(self, set_id: int) -> Optional[SubtitleSet]:
        with self._lock:
            row = self.conn.execute(
                """SELECT s.*, COUNT(t.id) AS total
                   FROM subtitle_sets s LEFT JOIN subtitles t ON t.set_id = s.id
                   WHERE s.id = ? GROUP BY s.id""",
                (set_id,),
            ).fetchone()
        return self._row_to_set(row) if row else None

    def list_sets(self, limit: int = 20) -> List[SubtitleSet]:
        with self._lock:
            rows = self.conn.execute(
                """SELECT s.*, COUNT(t.id) AS total
                   FROM subtitle_sets s LEFT JOIN subtitles t ON t.set_id = s.id
                   GROUP BY s.id ORDER BY s.id DESC LIMIT ?""",
                (limit,),
            ).fetchall()
        return [self._row_to_set(r) for r in rows]

    # ── Entries ───────────────────────────────────────────────────────

    def load_entries(self, set_id: int, limit: Optional[int] = None) -> List[SubtitleEntry]:
        """Entries of a set ordered by index (invalid indices first, ties by insertion)."""
        sql = "SELECT * FROM subtitles WHERE set_id = ? ORDER BY idx, id"
        params: tuple = (set_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (set_id, limit)
        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def save_translation(self, entry_id: int, translated_text: str) -> None:
        with self._lock:
            self.conn.execute(
                "UPDATE subtitles SET translated_text = ? WHERE id = ?",
                (translated_text, entry_id),
            )
            self.conn.commit()

    def save_translations(self, translations: Sequence[Tuple[int, str]]) -> None:
        """Write several ``(entry_id, translated_text)`` pairs in one transaction."""
        with self._lock:
            try:
                self.conn.executemany(
                    "UPDATE subtitles SET translated_text = ? WHERE id = ?",
                    [(text, entry_id) for entry_id, text in translations],
                )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise
