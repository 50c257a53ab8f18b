"""
In-memory stand-ins for PyMySQL connections used across the test suite.

FakeTable holds catalog rows (what information_schema.columns returns) and
raw data rows shaped the way a scan connection with result decoders disabled
delivers them: text for numbers and dates, bytes for binary columns.
"""

import itertools
import threading

import pymysql
import pytest


class FakeTable:
    def __init__(self, catalog, rows):
        self.catalog = catalog
        self.rows = rows


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self._pending = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        if self.conn.fail_on is not None and self.conn.fail_on(sql, params):
            raise pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query")
        if "information_schema.columns" in sql:
            self._pending = [dict(row) for row in self.conn.table.catalog]
        else:
            start, end = params
            self._pending = [row for row in self.conn.table.rows if start <= int(row[0]) < end]

    def fetchmany(self, size):
        self.conn.fetch_sizes.append(size)
        batch, self._pending = self._pending[:size], self._pending[size:]
        return batch

    def fetchall(self):
        rows, self._pending = self._pending, []
        return rows

    def close(self):
        self._pending = []


class FakeConnection:
    def __init__(self, table, fail_on=None):
        self.table = table
        self.fail_on = fail_on
        self.executed = []
        self.fetch_sizes = []
        self.closed = False

    def cursor(self, cursor_class=None):
        return FakeCursor(self)

    def close(self):
        self.closed = True


class FakeConnector:
    """Callable connection factory that remembers what it opened.

    ``fail_opens`` lists the 1-based connect attempts that are refused.
    """

    def __init__(self, table, fail_on=None, fail_opens=()):
        self.table = table
        self.fail_on = fail_on
        self.fail_opens = set(fail_opens)
        self.opened = []
        self.attempts = 0
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def __call__(self):
        with self._lock:
            self.attempts += 1
            if self.attempts in self.fail_opens:
                raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
            conn = FakeConnection(self.table, self.fail_on)
            conn.number = next(self._ids)
            self.opened.append(conn)
        return conn


CATALOG = [
    {"column_name": "id", "data_type": "bigint", "column_key": "PRI"},
    {"column_name": "name", "data_type": "varchar", "column_key": ""},
    {"column_name": "amount", "data_type": "decimal", "column_key": ""},
    {"column_name": "qty", "data_type": "int", "column_key": ""},
    {"column_name": "created", "data_type": "datetime", "column_key": ""},
    {"column_name": "payload", "data_type": "blob", "column_key": ""},
]


def well_formed_row(row_id):
    return (
        str(row_id),
        f"row{row_id}col1",
        f"{row_id}.25",
        str(row_id * 3),
        f"2024-01-{(row_id % 28) + 1:02d} 12:30:00",
        bytes([row_id % 256]) * 4,
    )


def make_table(total_rows, catalog=None, row_factory=well_formed_row):
    return FakeTable(list(catalog or CATALOG), [row_factory(i) for i in range(1, total_rows + 1)])


@pytest.fixture
def table_40():
    return make_table(40)
