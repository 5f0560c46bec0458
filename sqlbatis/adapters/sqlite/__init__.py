"""SQLite adapter for SQLBatis."""

from sqlbatis.adapters.sqlite.config import SqliteConfig, SqliteConnectionParams

__all__ = ("SqliteConfig", "SqliteConnectionParams")
