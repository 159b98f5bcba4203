"""One-off upgrade of a single-user database: attributes legacy rows to the default user."""
from contextlib import closing
from typing import Dict

import planner_db


def _count_default_rows(path: str) -> Dict[str, int]:
    """Counts todos and transactions owned by the default user."""
    counts = {}
    with closing(planner_db.get_db_connection(path)) as conn:
        cursor = conn.cursor()
        for table in ('todos', 'transactions'):
            cursor.execute(
                f'SELECT COUNT(*) AS total FROM {table} WHERE user_id = ?',
                (planner_db.DEFAULT_USER_ID,),
            )
            counts[table] = cursor.fetchone()['total']
    return counts


def migrate_legacy(path: str = planner_db.DATABASE_PATH) -> Dict[str, int]:
    planner_db.init_db(path)
    counts = _count_default_rows(path)
    print(f"Default user owns {counts['todos']} todos and {counts['transactions']} transactions.")
    return counts


if __name__ == '__main__':
    migrate_legacy()
