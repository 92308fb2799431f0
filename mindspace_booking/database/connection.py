"""Database connection manager for SQLite."""

import sqlite3

from mindspace_booking.config import DB_PATH

from .schema import SCHEMA


def get_connection() -> sqlite3.Connection:
    """Get a database connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database() -> None:
    """Initialize the database with schema."""
    conn = get_connection()
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
