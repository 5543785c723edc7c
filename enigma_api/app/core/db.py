"""
SQLite database integration and simple migration system.

The ``Database`` object owns the location of the SQLite file and hands
out short-lived connections (``get_connection``/``get_cursor``).  Its
``connect`` method is the one-time preparation step run by the
bootstrap gate: it checks that the file can be opened and applies any
pending migrations.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.  Unique
constraints on ``domains.code``, ``users.email`` and
``members.user_id`` are what keep concurrent seeders from creating
duplicate records, so they must never be dropped.
"""

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .exceptions import DependencyError


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: identity schema
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS domains (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            code TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            color TEXT,
            description TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            password TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'user'
                CHECK (role IN ('user', 'admin', 'moderator')),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE,
            display_name TEXT NOT NULL,
            primary_position TEXT,
            primary_domain_id INTEGER,
            roles TEXT NOT NULL DEFAULT '[]',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(user_id) REFERENCES users(id),
            FOREIGN KEY(primary_domain_id) REFERENCES domains(id)
        );
        """,
    ),
    # Migration 2: lookup index for role-based listings
    (
        2,
        """
        CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);
        """,
    ),
]


class Database:
    """Handle to the application's SQLite database."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    @property
    def path(self) -> str:
        """Compute the path to the SQLite database file.

        Absolute paths are used as given; relative paths are resolved
        against the project root.
        """
        db_url = self.database_url
        if os.path.isabs(db_url):
            return db_url
        base_dir = Path(__file__).resolve().parent.parent.parent.parent
        return str((base_dir / db_url).resolve())

    def get_connection(self) -> sqlite3.Connection:
        """Create and return a new SQLite connection.

        Rows are returned as ``sqlite3.Row`` objects so columns can be
        accessed by name.  Foreign keys are enforced per connection.
        """
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def get_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager that yields a cursor and closes the connection on exit."""
        conn = self.get_connection()
        try:
            yield conn.cursor()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def connect(self) -> None:
        """Open the database once and apply pending migrations.

        Raises
        ------
        DependencyError
            If no database is configured or the file cannot be opened or
            migrated.
        """
        if not self.database_url:
            raise DependencyError("DATABASE_URL is not configured")
        try:
            self.init_db()
        except sqlite3.Error as exc:
            raise DependencyError(f"Database unavailable: {exc}") from exc

    def init_db(self) -> None:
        """Create the ``migrations`` table and apply new migrations in order."""
        with self.get_cursor() as cursor:
            cursor.execute(
                "CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)"
            )
            cursor.execute("SELECT MAX(version) as version FROM migrations")
            row = cursor.fetchone()
            current_version = row["version"] if row and row["version"] is not None else 0

            for version, sql in MIGRATIONS:
                if version > current_version:
                    cursor.executescript(sql)
                    # Two processes may migrate the same file at once.
                    cursor.execute(
                        "INSERT OR IGNORE INTO migrations (version) VALUES (?)", (version,)
                    )
                    current_version = version
