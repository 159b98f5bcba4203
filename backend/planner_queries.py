"""Parameterized reads and writes against the users, todos and transactions tables.

Dates are stored as ``YYYY-MM-DD`` strings, so exact match, ``substr`` prefix and
``BETWEEN`` comparisons on ``created_at`` all follow calendar order.
"""
import sqlite3
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from planner_db import DEFAULT_USER_ID

logger = logging.getLogger(__name__)


class PlannerError(Exception):
    """Request-level failure that maps to a 400 response."""

    message = 'Bad request'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class MissingParameter(PlannerError):
    def __init__(self, name: str):
        super().__init__(f'{name} required')
        self.name = name


class InvalidParameter(PlannerError):
    def __init__(self, name: str, expected: str = 'an integer'):
        super().__init__(f'{name} must be {expected}')
        self.name = name


class EmptyUsername(PlannerError):
    message = '用户名不能为空'


class DuplicateUsername(PlannerError):
    def __init__(self, username: str):
        super().__init__('用户名已存在')
        self.username = username


class ProtectedUser(PlannerError):
    message = '默认用户不能删除'


# --- users ---

def list_users(conn) -> List[sqlite3.Row]:
    cursor = conn.cursor()
    cursor.execute('SELECT id, username, created_at FROM users ORDER BY id')
    return cursor.fetchall()


def get_user_by_username(cursor, username: str):
    cursor.execute('SELECT * FROM users WHERE username = ?', (username,))
    return cursor.fetchone()


def create_user(conn, username: Optional[str]) -> Tuple[int, str]:
    """Inserts a trimmed, non-empty, unique username and returns (id, username)."""
    name = (username or '').strip()
    if not name:
        raise EmptyUsername()

    cursor = conn.cursor()
    if get_user_by_username(cursor, name):
        raise DuplicateUsername(name)
    try:
        cursor.execute('INSERT INTO users (username) VALUES (?)', (name,))
    except sqlite3.IntegrityError:
        raise DuplicateUsername(name)
    user_id = cursor.lastrowid
    conn.commit()
    logger.info('Created user %s (%s)', user_id, name)
    return user_id, name


def delete_user(conn, user_id: int) -> None:
    """Deletes one users row; owned todos and transactions are left in place."""
    if user_id == DEFAULT_USER_ID:
        raise ProtectedUser()
    cursor = conn.cursor()
    cursor.execute('DELETE FROM users WHERE id = ?', (user_id,))
    conn.commit()
    if cursor.rowcount:
        logger.info('Deleted user %s', user_id)


# --- day data ---

def get_day_data(conn, date: Optional[str], user_id: int = DEFAULT_USER_ID):
    """Returns (todos, transactions) recorded on date for one user."""
    if not date:
        raise MissingParameter('date')

    cursor = conn.cursor()
    cursor.execute(
        'SELECT * FROM todos WHERE created_at = ? AND user_id = ? ORDER BY start_time',
        (date, user_id),
    )
    todos = cursor.fetchall()
    cursor.execute(
        'SELECT * FROM transactions WHERE created_at = ? AND user_id = ? ORDER BY id',
        (date, user_id),
    )
    transactions = cursor.fetchall()
    return todos, transactions


# --- todos ---

def create_todo(conn, text, start, end, date, user_id: int = DEFAULT_USER_ID) -> int:
    cursor = conn.cursor()
    cursor.execute(
        'INSERT INTO todos (user_id, text, start_time, end_time, created_at) VALUES (?, ?, ?, ?, ?)',
        (user_id, text, start, end, date),
    )
    conn.commit()
    return cursor.lastrowid


def toggle_todo(conn, todo_id: int) -> None:
    """Flips completed with a single UPDATE; unknown ids are a no-op."""
    conn.execute('UPDATE todos SET completed = NOT completed WHERE id = ?', (todo_id,))
    conn.commit()


def delete_todo(conn, todo_id: int) -> None:
    conn.execute('DELETE FROM todos WHERE id = ?', (todo_id,))
    conn.commit()


# --- transactions ---

def parse_amount(value) -> str:
    """Validates an amount and returns it as a two-decimal string for the NUMERIC column."""
    if value is None or value == '':
        raise MissingParameter('amount')
    if isinstance(value, bool):
        raise InvalidParameter('amount', 'a number')
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise InvalidOperation(value)
        return str(amount.quantize(Decimal('0.01')))
    except InvalidOperation:
        raise InvalidParameter('amount', 'a number')


def create_transaction(conn, txn_type, category, desc, amount, date,
                       user_id: int = DEFAULT_USER_ID) -> int:
    amount = parse_amount(amount)
    cursor = conn.cursor()
    cursor.execute(
        'INSERT INTO transactions (user_id, type, category, description, amount, created_at) '
        'VALUES (?, ?, ?, ?, ?, ?)',
        (user_id, txn_type, category, desc, amount, date),
    )
    conn.commit()
    return cursor.lastrowid


def delete_transaction(conn, transaction_id: int) -> None:
    conn.execute('DELETE FROM transactions WHERE id = ?', (transaction_id,))
    conn.commit()


# --- stats ---

def date_prefix(year: str, month: Optional[str] = None) -> str:
    """Builds the created_at prefix: 'YYYY' or 'YYYY-MM' with the month zero-padded."""
    year = str(year).strip()
    month = str(month).strip() if month is not None else ''
    if not month:
        return year
    return f'{year}-{month.zfill(2)}'


def yearly_stats(conn, year: Optional[str], user_id: int = DEFAULT_USER_ID) -> List[sqlite3.Row]:
    if not year:
        raise MissingParameter('year')
    prefix = date_prefix(year)
    cursor = conn.cursor()
    cursor.execute(
        'SELECT * FROM transactions WHERE substr(created_at, 1, ?) = ? AND user_id = ? '
        'ORDER BY created_at, id',
        (len(prefix), prefix, user_id),
    )
    return cursor.fetchall()


def category_stats(conn, year: Optional[str], month: Optional[str] = None,
                   user_id: int = DEFAULT_USER_ID) -> List[sqlite3.Row]:
    """Sums and counts transactions per (type, category) within a year or month."""
    if not year:
        raise MissingParameter('year')
    prefix = date_prefix(year, month)
    cursor = conn.cursor()
    cursor.execute(
        'SELECT type, category, ROUND(SUM(amount), 2) AS total, COUNT(*) AS count '
        'FROM transactions WHERE substr(created_at, 1, ?) = ? AND user_id = ? '
        'GROUP BY type, category ORDER BY type, total DESC',
        (len(prefix), prefix, user_id),
    )
    return cursor.fetchall()


def export_range(conn, start_date: Optional[str], end_date: Optional[str],
                 user_id: int = DEFAULT_USER_ID):
    """Returns (todos, transactions) with created_at between both dates inclusive."""
    if not start_date:
        raise MissingParameter('startDate')
    if not end_date:
        raise MissingParameter('endDate')

    cursor = conn.cursor()
    cursor.execute(
        'SELECT * FROM todos WHERE user_id = ? AND created_at BETWEEN ? AND ? '
        'ORDER BY created_at, start_time',
        (user_id, start_date, end_date),
    )
    todos = cursor.fetchall()
    cursor.execute(
        'SELECT * FROM transactions WHERE user_id = ? AND created_at BETWEEN ? AND ? '
        'ORDER BY created_at, id',
        (user_id, start_date, end_date),
    )
    transactions = cursor.fetchall()
    return todos, transactions
