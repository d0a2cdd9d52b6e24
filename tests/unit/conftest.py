"""In-memory driver double for unit tests.

Every fake server holds a single ``kv`` table (``id``, ``value``) understood
through a handful of fixed statement shapes; anything else is answered from
``FakeDriver.scripted`` or with an empty result. Every executed statement is
recorded together with the handle of the connection that received it, so
routing decisions can be asserted on.
"""

from __future__ import annotations

import random
import re
from collections import defaultdict
from typing import TYPE_CHECKING

import pytest

from replicadb import DatabaseClient, DatabaseSettings, DriverError, Result, ServerDescriptor

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


_INSERT = re.compile(r"^INSERT INTO kv \(value\) VALUES \('(?P<value>.*)'\)$")
_UPDATE = re.compile(r"^UPDATE kv SET value = '(?P<value>.*)' WHERE id = (?P<id>\d+)$")
_DELETE = re.compile(r"^DELETE FROM kv WHERE id = (?P<id>\d+)$")
_SELECT_ONE = re.compile(r"^SELECT value FROM kv WHERE id = (?P<id>\d+)$")
_SELECT_ALL = "SELECT id, value FROM kv ORDER BY id"


class FakeDatabase:
    """Committed state of one fake server."""

    def __init__(self) -> None:
        self.rows: dict[int, str] = {}
        self.next_id = 1


class FakeConnection:
    def __init__(self, driver: FakeDriver, server: ServerDescriptor, handle: int) -> None:
        self.driver = driver
        self.server = server
        self.handle = handle
        self.executed: list[str] = []
        self.charset: str | None = None
        self.autocommit = True
        self.closed = False
        self.commits = 0
        self.rollbacks = 0
        self._pending: dict[int, str] | None = None
        self._last_insert_id = 0

    def __repr__(self) -> str:
        return f"FakeConnection(handle={self.handle}, host={self.server.host!r})"

    @property
    def database(self) -> FakeDatabase:
        return self.driver.databases[self.server.host]

    @property
    def server_version(self) -> int:
        return 80036

    @property
    def last_insert_id(self) -> int:
        return self._last_insert_id

    def set_charset(self, charset: str) -> None:
        if charset in self.driver.bad_charsets:
            raise DriverError(f"Can't initialize character set {charset}", code=2019)
        self.charset = charset

    def escape(self, value: str) -> str:
        return value.replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"')

    def execute(self, sql: str) -> Result:
        self._ensure_open()
        self.executed.append(sql)
        self.driver.log.append((self.handle, sql))

        if sql in self.driver.failing:
            code, message = self.driver.failing[sql]
            raise DriverError(message, code=code)
        if sql in self.driver.scripted:
            columns, rows = self.driver.scripted[sql]
            return Result(columns, rows, affected_rows=len(rows))
        return self._run_kv(sql)

    def set_autocommit(self, enabled: bool) -> None:
        self._ensure_open()
        if enabled:
            if self._pending is not None:
                self.database.rows = self._pending
            self._pending = None
        elif self._pending is None:
            self._pending = dict(self.database.rows)
        self.autocommit = enabled

    def commit(self) -> None:
        self._ensure_open()
        self.commits += 1
        if self._pending is not None:
            self.database.rows = dict(self._pending)

    def rollback(self) -> None:
        self._ensure_open()
        self.rollbacks += 1
        if self._pending is not None:
            self._pending = dict(self.database.rows)

    def close(self) -> None:
        if self.closed:
            raise DriverError("Already closed")
        if self.driver.close_fails:
            raise DriverError("Connection reset while closing", code=2013)
        self.closed = True

    def stat(self) -> str:
        return "Uptime: 42  Threads: 1  Questions: 7"

    def _ensure_open(self) -> None:
        if self.closed:
            raise DriverError("Connection is closed", code=2006)

    def _view(self) -> dict[int, str]:
        return self._pending if self._pending is not None else self.database.rows

    def _run_kv(self, sql: str) -> Result:
        rows = self._view()

        if match := _INSERT.match(sql):
            new_id = self.database.next_id
            self.database.next_id += 1
            rows[new_id] = match["value"]
            self._last_insert_id = new_id
            return Result(affected_rows=1, insert_id=new_id)

        if match := _UPDATE.match(sql):
            key = int(match["id"])
            if key not in rows:
                return Result(affected_rows=0)
            rows[key] = match["value"]
            return Result(affected_rows=1)

        if match := _DELETE.match(sql):
            removed = rows.pop(int(match["id"]), None)
            return Result(affected_rows=0 if removed is None else 1)

        if match := _SELECT_ONE.match(sql):
            key = int(match["id"])
            return Result(("value",), [(rows[key],)] if key in rows else [])

        if sql == _SELECT_ALL:
            return Result(("id", "value"), sorted(rows.items()))

        if sql.lstrip().upper().startswith("SELECT"):
            return Result(("result",), [])
        return Result(affected_rows=0)


class FakeDriver:
    """`Driver` double recording connections and statements."""

    def __init__(self) -> None:
        self.databases: defaultdict[str, FakeDatabase] = defaultdict(FakeDatabase)
        self.connections: list[FakeConnection] = []
        self.log: list[tuple[int, str]] = []
        self.unreachable: set[str] = set()
        self.bad_charsets: set[str] = set()
        self.failing: dict[str, tuple[int, str]] = {}
        self.scripted: dict[str, tuple[Sequence[str], list[tuple[object, ...]]]] = {}
        self.close_fails = False

    def connect(self, server: ServerDescriptor) -> FakeConnection:
        if server.host in self.unreachable:
            raise DriverError(f"Can't connect to MySQL server on '{server.host}'", code=2003)
        conn = FakeConnection(self, server, handle=len(self.connections) + 1)
        self.connections.append(conn)
        return conn

    def statements_on(self, conn: FakeConnection) -> list[str]:
        return [sql for handle, sql in self.log if handle == conn.handle]


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def primary() -> ServerDescriptor:
    return ServerDescriptor(host="primary", user="app", database="shop")


@pytest.fixture
def cluster_settings(primary: ServerDescriptor) -> DatabaseSettings:
    """Primary plus two replicas."""
    return DatabaseSettings.with_replica_hosts(primary, ["replica-1", "replica-2"])


@pytest.fixture
def single_settings(primary: ServerDescriptor) -> DatabaseSettings:
    return DatabaseSettings.from_servers(primary)


@pytest.fixture
def client(cluster_settings: DatabaseSettings, fake_driver: FakeDriver) -> Iterator[DatabaseClient]:
    """Client over the three-server cluster with a seeded replica choice."""
    with DatabaseClient(cluster_settings, driver=fake_driver, rng=random.Random(7)) as db:
        yield db


@pytest.fixture
def single_client(single_settings: DatabaseSettings, fake_driver: FakeDriver) -> Iterator[DatabaseClient]:
    with DatabaseClient(single_settings, driver=fake_driver) as db:
        yield db
