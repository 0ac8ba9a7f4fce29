"""SQLite persistence for learner profiles and topic progress."""

from examprep.db.database import SCHEMA_VERSION, get_db, get_db_path, init_db, reset_db

__all__ = ["SCHEMA_VERSION", "get_db", "get_db_path", "init_db", "reset_db"]
