"""SQLite storage for learner profiles and topic progress.

The database file sits under the data directory (``paths.db_file`` in the
app config). The schema is versioned with ``PRAGMA user_version`` and
each migration in ``MIGRATIONS`` runs once per file.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog

from examprep.config.app_config import get_data_dir, load_app_config

logger = structlog.get_logger(__name__)

MIGRATIONS: list[str] = [
    # 1: profiles and per-subject progress
    """
    CREATE TABLE IF NOT EXISTS user_profile (
        user_id TEXT PRIMARY KEY,
        display_name TEXT,
        persona TEXT NOT NULL DEFAULT 'student',
        study_goal_minutes INTEGER,
        selected_track TEXT,
        created_at TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS topic_progress (
        user_id TEXT NOT NULL,
        track TEXT NOT NULL,
        subject TEXT NOT NULL,
        attempts INTEGER NOT NULL DEFAULT 0,
        questions_answered INTEGER NOT NULL DEFAULT 0,
        correct_answers INTEGER NOT NULL DEFAULT 0,
        average_score REAL NOT NULL DEFAULT 0,
        last_ability REAL,
        last_tested_at TEXT,
        PRIMARY KEY (user_id, track, subject)
    );

    CREATE INDEX IF NOT EXISTS idx_topic_progress_user ON topic_progress(user_id);
    """,
    # 2: mission difficulty preference moved by adaptive test results
    """
    ALTER TABLE user_profile ADD COLUMN mission_difficulty TEXT;
    """,
]

SCHEMA_VERSION = len(MIGRATIONS)

_override_path: Path | None = None
_migrated: set[Path] = set()


def get_db_path(data_dir: Path | None = None) -> Path:
    """Database file for ``data_dir``.

    Without a data directory the path set by ``init_db`` wins, then the
    default data directory.
    """
    if data_dir is None and _override_path is not None:
        return _override_path
    return (data_dir or get_data_dir()) / load_app_config().paths.get("db_file", "db/examprep.db")


def init_db(db_path: Path | None = None) -> Path:
    """Point the module at a database file and bring its schema up to date.

    Returns:
        The database path in use
    """
    global _override_path
    _override_path = db_path
    path = get_db_path()
    with get_db():
        pass
    return path


def reset_db() -> None:
    """Drop any explicit path and forget which files were migrated."""
    global _override_path
    _override_path = None
    _migrated.clear()


def _migrate(conn: sqlite3.Connection, path: Path) -> None:
    current = conn.execute("PRAGMA user_version").fetchone()[0]
    for version in range(current, SCHEMA_VERSION):
        conn.executescript(MIGRATIONS[version])
        conn.execute(f"PRAGMA user_version = {version + 1}")
        logger.info("db_migrated", path=str(path), version=version + 1)


@contextmanager
def get_db(data_dir: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Open a connection that commits on success and rolls back on error.

    Rows come back as ``sqlite3.Row``.
    """
    path = get_db_path(data_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        if path not in _migrated:
            _migrate(conn, path)
            _migrated.add(path)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
