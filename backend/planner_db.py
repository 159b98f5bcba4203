import os
import sqlite3
import logging
from contextlib import closing

DATABASE_PATH = os.environ.get(
    'PLANNER_DATABASE_PATH',
    os.path.join(os.path.dirname(__file__), 'daily_plan.db'),
)
INIT_SCHEMA = os.environ.get('PLANNER_INIT_SCHEMA', '1') != '0'

DEFAULT_USER_ID = 1
DEFAULT_USERNAME = 'default'

logger = logging.getLogger(__name__)


def get_db_connection(path: str = DATABASE_PATH) -> sqlite3.Connection:
    """Opens the shared SQLite connection with rows exposed as mappings."""
    conn = sqlite3.connect(path, check_same_thread=False)
    if path != ':memory:':
        conn.execute('PRAGMA journal_mode=WAL')
        conn.execute('PRAGMA synchronous=NORMAL')
    conn.row_factory = sqlite3.Row
    return conn


def init_db_for_connection(conn: sqlite3.Connection) -> None:
    """Creates the users, todos and transactions tables and the default user."""
    cursor = conn.cursor()
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
        """
    )
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS todos (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER DEFAULT 1,
            text TEXT NOT NULL,
            start_time TEXT,
            end_time TEXT,
            completed BOOLEAN DEFAULT 0,
            created_at TEXT,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );
        """
    )
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER DEFAULT 1,
            type TEXT CHECK(type IN ('income','expense')) NOT NULL,
            category TEXT,
            description TEXT,
            amount NUMERIC NOT NULL,
            created_at TEXT,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );
        """
    )
    ensure_default_user(cursor)
    conn.commit()


def ensure_default_user(cursor) -> None:
    cursor.execute(
        'INSERT OR IGNORE INTO users (id, username) VALUES (?, ?)',
        (DEFAULT_USER_ID, DEFAULT_USERNAME),
    )


def column_exists(cursor, table: str, column: str) -> bool:
    """Checks PRAGMA table_info for the given column."""
    cursor.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cursor.fetchall())


def table_exists(cursor, table: str) -> bool:
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
    return cursor.fetchone() is not None


def migrate_db_for_connection(conn: sqlite3.Connection) -> None:
    """Upgrades a single-user database: adds the users table and user_id columns."""
    cursor = conn.cursor()
    if not table_exists(cursor, 'users'):
        cursor.execute(
            """
            CREATE TABLE users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT UNIQUE NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        logger.info('Created users table')
    ensure_default_user(cursor)
    for table in ('todos', 'transactions'):
        if table_exists(cursor, table) and not column_exists(cursor, table, 'user_id'):
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN user_id INTEGER DEFAULT 1")
            logger.info('Added user_id column to %s', table)
    conn.commit()


def init_db(path: str = DATABASE_PATH) -> None:
    """Bootstraps and migrates the schema in the database file at path."""
    with closing(get_db_connection(path)) as conn:
        init_db_for_connection(conn)
        migrate_db_for_connection(conn)
