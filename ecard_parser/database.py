"""
SQLite Work Queue
=================
Tracks which OCR JSON files still need to be turned into CSV rows.

One row per JSON path. A row is marked complete only after its CSV batch
has been written, so an interrupted run picks up where it left off.
Documents that could not be extracted stay incomplete with the reason in
the Comments column.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

WORK_QUEUE_TABLE = "WorkQueue"

# Default database path: current working directory
_DEFAULT_DB_PATH = "ecards.sqlite"

_SCAN_PROGRESS_INTERVAL = 1000


def get_db_path() -> str:
    """Return the configured database path."""
    return os.environ.get("ECARD_DB_PATH", _DEFAULT_DB_PATH)


@contextmanager
def get_connection(db_path: str = None):
    """
    Context manager for database connections.
    Ensures proper commit/rollback and connection cleanup.
    """
    db_path = db_path or get_db_path()
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def db_exists(db_path: str = None) -> bool:
    """Whether the database file has been created."""
    return Path(db_path or get_db_path()).is_file()


def init_db(db_path: str = None):
    """
    Initialize the work queue schema.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    db_path = db_path or get_db_path()
    logger.info(f"Initializing work queue at: {db_path}")

    with get_connection(db_path) as conn:
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS {WORK_QUEUE_TABLE} (
                Id INTEGER PRIMARY KEY,
                Path TEXT UNIQUE,
                IsComplete INTEGER DEFAULT 0,
                Comments TEXT DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_work_queue_complete
                ON {WORK_QUEUE_TABLE}(IsComplete);
        """)

    logger.info("Work queue schema initialized successfully")


# ─── Enqueue ──────────────────────────────────────────────────────────────────


def enqueue_file(path: str, db_path: str = None) -> bool:
    """
    Add a JSON path to the queue.
    Returns False if the path was already queued.
    """
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            f"""INSERT OR IGNORE INTO {WORK_QUEUE_TABLE}
                (Path, IsComplete, Comments) VALUES (?, 0, '')""",
            (path,),
        )
        return cursor.rowcount > 0


def enqueue_directory(directory: str, db_path: str = None) -> int:
    """
    Queue every *.json file directly inside a directory.
    Already-queued paths are ignored. Returns the number of files scanned.
    """
    logger.info(f"Scanning {directory} for JSON files...")

    scanned = 0
    with get_connection(db_path) as conn:
        for json_path in sorted(Path(directory).glob("*.json")):
            if not json_path.is_file():
                continue
            conn.execute(
                f"""INSERT OR IGNORE INTO {WORK_QUEUE_TABLE}
                    (Path, IsComplete, Comments) VALUES (?, 0, '')""",
                (str(json_path),),
            )
            scanned += 1
            if scanned % _SCAN_PROGRESS_INTERVAL == 0:
                logger.info(f"Scanned {scanned} files...")

    logger.info(f"Scanning complete: {scanned} JSON files found")
    return scanned


# ─── Queries ──────────────────────────────────────────────────────────────────


def count_pending(db_path: str = None) -> int:
    """Number of queued paths not yet complete."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            f"SELECT COUNT(*) FROM {WORK_QUEUE_TABLE} WHERE IsComplete=0"
        ).fetchone()
        return row[0]


def count_all(db_path: str = None) -> int:
    """Number of queued paths, complete or not."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            f"SELECT COUNT(*) FROM {WORK_QUEUE_TABLE}"
        ).fetchone()
        return row[0]


def list_pending_paths(
    limit: Optional[int] = None,
    db_path: str = None,
) -> list[str]:
    """Paths still to process, in queue order."""
    query = f"SELECT Path FROM {WORK_QUEUE_TABLE} WHERE IsComplete=0 ORDER BY Id"
    params: tuple = ()
    if limit is not None:
        query += " LIMIT ?"
        params = (limit,)

    with get_connection(db_path) as conn:
        return [row["Path"] for row in conn.execute(query, params).fetchall()]


def list_all_paths(db_path: str = None) -> list[str]:
    """Every queued path, in queue order."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            f"SELECT Path FROM {WORK_QUEUE_TABLE} ORDER BY Id"
        ).fetchall()
        return [row["Path"] for row in rows]


def get_entry(path: str, db_path: str = None) -> Optional[dict]:
    """Get the queue row for a path."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            f"SELECT * FROM {WORK_QUEUE_TABLE} WHERE Path = ?", (path,)
        ).fetchone()
        return dict(row) if row else None


def list_commented(db_path: str = None) -> list[dict]:
    """Incomplete rows that carry a comment, i.e. previously skipped files."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            f"""SELECT Path, Comments FROM {WORK_QUEUE_TABLE}
                WHERE IsComplete=0 AND Comments != '' ORDER BY Id"""
        ).fetchall()
        return [dict(r) for r in rows]


# ─── Updates ──────────────────────────────────────────────────────────────────


def mark_complete(paths: Iterable[str], db_path: str = None) -> int:
    """Mark paths as processed. Returns the number of rows updated."""
    updated = 0
    with get_connection(db_path) as conn:
        for path in paths:
            cursor = conn.execute(
                f"""UPDATE {WORK_QUEUE_TABLE}
                    SET IsComplete=1, Comments='' WHERE Path = ?""",
                (path,),
            )
            updated += cursor.rowcount
    return updated


def record_comment(path: str, comment: str, db_path: str = None) -> bool:
    """Store a note (usually a skip reason) against a queued path."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            f"UPDATE {WORK_QUEUE_TABLE} SET Comments = ? WHERE Path = ?",
            (comment, path),
        )
        return cursor.rowcount > 0
