import io
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List

CSV_BOM = '\ufeff'
CSV_LINE_END = '\r\n'
CSV_SPECIAL_CHARS = (',', '"', '\r', '\n')
CENTS = Decimal('0.01')
CSV_HEADER = ['类型', '日期', '内容', '金额/时间', '状态']

TYPE_LABELS = {'income': '收入', 'expense': '支出'}
TODO_LABEL = '计划'
DONE_LABEL = '已完成'
PENDING_LABEL = '未完成'
NO_STATUS = '--'


def to_number(value: Any) -> float:
    """Converts a stored NUMERIC/Decimal amount into a float rounded to cents."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(CENTS))


def format_user(row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'username': row['username'],
        'createdAt': row['created_at'],
    }


def format_todo(row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'text': row['text'],
        'start': row['start_time'],
        'end': row['end_time'],
        'completed': bool(row['completed']),
    }


def format_transaction(row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'type': row['type'],
        'category': row['category'],
        'desc': row['description'],
        'amount': to_number(row['amount']),
    }


def format_stats_row(row) -> Dict[str, Any]:
    """Keeps the stored column names; only the amount is made numeric."""
    item = dict(row)
    item['amount'] = to_number(item.get('amount'))
    return item


def format_category_stat(row) -> Dict[str, Any]:
    return {
        'type': row['type'],
        'category': row['category'],
        'total': to_number(row['total']),
        'count': int(row['count']),
    }


def quote_field(value: Any) -> str:
    text = '' if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def csv_field(value: Any) -> str:
    """Leaves plain values bare and quotes the ones that would break the row."""
    text = '' if value is None else str(value)
    if any(char in text for char in CSV_SPECIAL_CHARS):
        return quote_field(text)
    return text


def csv_line(fields: List[str]) -> str:
    return ','.join(fields) + CSV_LINE_END


def build_export_csv(todos: Iterable, transactions: Iterable) -> str:
    """Renders todos then transactions as a BOM-prefixed CSV document.

    Content and time columns are always quoted; the remaining columns are
    quoted only when they contain a delimiter, quote or newline.
    """
    output = io.StringIO()
    output.write(CSV_BOM)
    output.write(csv_line([csv_field(name) for name in CSV_HEADER]))
    for row in todos:
        output.write(csv_line([
            TODO_LABEL,
            csv_field(row['created_at']),
            quote_field(row['text']),
            quote_field(f"{row['start_time'] or ''}-{row['end_time'] or ''}"),
            DONE_LABEL if row['completed'] else PENDING_LABEL,
        ]))
    for row in transactions:
        output.write(csv_line([
            csv_field(TYPE_LABELS.get(row['type'], row['type'])),
            csv_field(row['created_at']),
            quote_field(f"{row['category'] or ''}: {row['description'] or ''}"),
            f"¥{to_number(row['amount']):.2f}",
            NO_STATUS,
        ]))
    return output.getvalue()


def export_filename(start_date: str, end_date: str) -> str:
    """Builds an attachment name safe for a quoted Content-Disposition value."""
    safe_start = re.sub(r'[^0-9A-Za-z._-]', '_', start_date)
    safe_end = re.sub(r'[^0-9A-Za-z._-]', '_', end_date)
    return f'daily_plan_{safe_start}_{safe_end}.csv'
