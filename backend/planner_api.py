import os
import sqlite3
import logging
from contextlib import closing
from typing import Any

from flask import Flask, Blueprint, current_app, jsonify, request, make_response
from flask_cors import CORS

import planner_db
import planner_queries as queries
from planner_format import (
    build_export_csv,
    export_filename,
    format_category_stat,
    format_stats_row,
    format_todo,
    format_transaction,
    format_user,
)

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)


def get_conn() -> sqlite3.Connection:
    """Returns the connection injected into the running app."""
    return current_app.extensions['planner_db']


def resolve_user_id(value: Any) -> int:
    """Normalizes a userId parameter; missing, empty or 0 means the default user."""
    if value in (None, '', 0, '0'):
        return planner_db.DEFAULT_USER_ID
    try:
        return int(value)
    except (TypeError, ValueError):
        raise queries.InvalidParameter('userId')


@api.route('/')
def home():
    return jsonify({'message': 'Daily planner API is running'})


@api.route('/api/users', methods=['GET', 'POST'])
def users():
    """Lists users or registers a new username."""
    conn = get_conn()
    if request.method == 'GET':
        return jsonify([format_user(row) for row in queries.list_users(conn)])

    data = request.get_json(silent=True) or {}
    user_id, username = queries.create_user(conn, data.get('username'))
    return jsonify({'id': user_id, 'username': username}), 201


@api.route('/api/users/<int:user_id>', methods=['DELETE'])
def user_detail(user_id: int):
    queries.delete_user(get_conn(), user_id)
    return jsonify({'success': True})


@api.route('/api/data', methods=['GET'])
def day_data():
    """Returns the todos and transactions recorded on one date."""
    date = request.args.get('date')
    if not date:
        raise queries.MissingParameter('date')
    user_id = resolve_user_id(request.args.get('userId'))

    todos, transactions = queries.get_day_data(get_conn(), date, user_id)
    return jsonify({
        'todos': [format_todo(row) for row in todos],
        'transactions': [format_transaction(row) for row in transactions],
    })


@api.route('/api/todos', methods=['POST'])
def add_todo():
    data = request.get_json(silent=True) or {}
    todo_id = queries.create_todo(
        get_conn(),
        data.get('text'),
        data.get('start'),
        data.get('end'),
        data.get('date'),
        resolve_user_id(data.get('userId')),
    )
    return jsonify({'id': todo_id})


@api.route('/api/todos/<int:todo_id>/toggle', methods=['PUT'])
def toggle_todo(todo_id: int):
    queries.toggle_todo(get_conn(), todo_id)
    return jsonify({'success': True})


@api.route('/api/todos/<int:todo_id>', methods=['DELETE'])
def delete_todo(todo_id: int):
    queries.delete_todo(get_conn(), todo_id)
    return jsonify({'success': True})


@api.route('/api/transactions', methods=['POST'])
def add_transaction():
    data = request.get_json(silent=True) or {}
    transaction_id = queries.create_transaction(
        get_conn(),
        data.get('type'),
        data.get('category'),
        data.get('desc'),
        data.get('amount'),
        data.get('date'),
        resolve_user_id(data.get('userId')),
    )
    return jsonify({'id': transaction_id})


@api.route('/api/transactions/<int:transaction_id>', methods=['DELETE'])
def delete_transaction(transaction_id: int):
    queries.delete_transaction(get_conn(), transaction_id)
    return jsonify({'success': True})


@api.route('/api/stats', methods=['GET'])
def stats():
    """Returns every transaction row of the requested year."""
    year = request.args.get('year')
    if not year:
        raise queries.MissingParameter('year')
    user_id = resolve_user_id(request.args.get('userId'))
    rows = queries.yearly_stats(get_conn(), year, user_id)
    return jsonify([format_stats_row(row) for row in rows])


@api.route('/api/category-stats', methods=['GET'])
def category_stats():
    year = request.args.get('year')
    if not year:
        raise queries.MissingParameter('year')
    month = request.args.get('month') or None
    user_id = resolve_user_id(request.args.get('userId'))
    rows = queries.category_stats(get_conn(), year, month, user_id)
    return jsonify([format_category_stat(row) for row in rows])


@api.route('/api/export', methods=['GET'])
def export():
    """Builds a CSV of todos and transactions between two dates and sends it as a file."""
    start = request.args.get('startDate')
    end = request.args.get('endDate')
    if not start:
        raise queries.MissingParameter('startDate')
    if not end:
        raise queries.MissingParameter('endDate')
    user_id = resolve_user_id(request.args.get('userId'))

    todos, transactions = queries.export_range(get_conn(), start, end, user_id)
    csv_content = build_export_csv(todos, transactions)

    response = make_response(csv_content.encode('utf-8'))
    response.headers['Content-Disposition'] = f'attachment; filename="{export_filename(start, end)}"'
    response.headers['Content-Type'] = 'text/csv; charset=utf-8'
    return response


def handle_planner_error(exc: queries.PlannerError):
    return jsonify({'success': False, 'message': exc.message}), 400


def handle_database_error(exc: sqlite3.Error):
    logger.error('Database error on %s %s: %s', request.method, request.path, exc)
    return jsonify({'success': False, 'message': str(exc)}), 500


def create_app(conn: sqlite3.Connection, init_schema: bool = planner_db.INIT_SCHEMA) -> Flask:
    """Builds the Flask app around an already opened database connection."""
    app = Flask(__name__)
    CORS(app)
    app.json.ensure_ascii = False

    if init_schema:
        planner_db.init_db_for_connection(conn)
        logger.info('Database schema ready')
    app.extensions['planner_db'] = conn

    app.register_blueprint(api)
    app.register_error_handler(queries.PlannerError, handle_planner_error)
    app.register_error_handler(sqlite3.Error, handle_database_error)
    return app


def main() -> None:
    with closing(planner_db.get_db_connection(planner_db.DATABASE_PATH)) as conn:
        app = create_app(conn)
        app.run(
            host='0.0.0.0',
            port=int(os.environ.get('PORT', 3000)),
            debug=os.environ.get('PLANNER_DEBUG') == '1',
        )


if __name__ == '__main__':
    main()
