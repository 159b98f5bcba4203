import sqlite3
from contextlib import closing

import planner_db
import planner_queries as queries
from migrate_legacy_once import migrate_legacy

LEGACY_SCHEMA = """
CREATE TABLE todos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    text VARCHAR(255) NOT NULL,
    start_time VARCHAR(10),
    end_time VARCHAR(10),
    completed BOOLEAN DEFAULT FALSE,
    created_at VARCHAR(20)
);
CREATE TABLE transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    category VARCHAR(50),
    description VARCHAR(255),
    amount DECIMAL(10, 2) NOT NULL,
    created_at VARCHAR(20)
);
INSERT INTO todos (text, start_time, end_time, created_at) VALUES ('old plan', '08:00', '09:00', '2023-06-01');
INSERT INTO transactions (type, category, description, amount, created_at)
    VALUES ('expense', 'food', 'noodles', 15.00, '2023-06-01');
"""


def _legacy_db(tmp_path):
    path = str(tmp_path / 'legacy.db')
    with closing(sqlite3.connect(path)) as conn:
        conn.executescript(LEGACY_SCHEMA)
    return path


def test_migrate_assigns_legacy_rows_to_default_user(tmp_path, capsys):
    path = _legacy_db(tmp_path)

    counts = migrate_legacy(path)

    assert counts == {'todos': 1, 'transactions': 1}
    assert 'Default user owns 1 todos and 1 transactions.' in capsys.readouterr().out
    with closing(planner_db.get_db_connection(path)) as conn:
        todos, transactions = queries.get_day_data(conn, '2023-06-01', 1)
        assert [row['text'] for row in todos] == ['old plan']
        assert [row['description'] for row in transactions] == ['noodles']
        assert [row['id'] for row in queries.list_users(conn)] == [1]


def test_migrate_is_idempotent(tmp_path):
    path = _legacy_db(tmp_path)
    migrate_legacy(path)
    assert migrate_legacy(path) == {'todos': 1, 'transactions': 1}


def test_migrate_for_connection_on_fresh_schema(conn):
    planner_db.migrate_db_for_connection(conn)
    cursor = conn.cursor()
    assert planner_db.column_exists(cursor, 'todos', 'user_id')
    assert planner_db.table_exists(cursor, 'users')
