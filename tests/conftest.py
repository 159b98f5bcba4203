from contextlib import closing

import pytest

import planner_db
from planner_api import create_app


@pytest.fixture
def conn():
    with closing(planner_db.get_db_connection(':memory:')) as connection:
        planner_db.init_db_for_connection(connection)
        yield connection


@pytest.fixture
def app(conn):
    app = create_app(conn, init_schema=False)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
