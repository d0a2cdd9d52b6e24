"""PyMySQL-backed driver.

One `PyMySQLConnection` wraps one ``pymysql.connections.Connection``.
Statements are sent verbatim: arguments have already been escaped and
rendered by the client, so the cursor is never given parameters and
PyMySQL performs no interpolation of its own.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pymysql
from pymysql.charset import charset_by_name
from pymysql.cursors import Cursor

from ..exceptions import DriverError
from ..logger import get_logger
from ..result import Result

if TYPE_CHECKING:
    from pymysql.connections import Connection
    from structlog.stdlib import BoundLogger

    from ..config import ServerDescriptor

logger: BoundLogger = get_logger(__name__)

_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)")

# CR_CANT_READ_CHARSET, the client-side code libmysqlclient reports for unknown charsets.
_CR_CANT_READ_CHARSET = 2019

# Same fields, same order, as the COM_STATISTICS line mysqladmin prints.
_STATUS_FIELDS: tuple[tuple[str, str], ...] = (
    ("Uptime", "Uptime"),
    ("Threads_connected", "Threads"),
    ("Questions", "Questions"),
    ("Slow_queries", "Slow queries"),
    ("Opened_tables", "Opens"),
    ("Flush_commands", "Flush tables"),
    ("Open_tables", "Open tables"),
)


def parse_server_version(version: str) -> int:
    """Convert ``"8.0.36-log"`` into ``80036``.

    Returns 0 for strings that do not start with ``major.minor.patch``.
    """
    match = _VERSION_PATTERN.match(version)
    if match is None:
        return 0
    major, minor, patch = (int(part) for part in match.groups())
    return major * 10000 + minor * 100 + patch


def _to_driver_error(exc: pymysql.MySQLError) -> DriverError:
    if len(exc.args) >= 2 and isinstance(exc.args[0], int):
        return DriverError(str(exc.args[1]), code=exc.args[0])
    return DriverError(str(exc) or type(exc).__name__)


class PyMySQLConnection:
    """`DriverConnection` over a single PyMySQL connection."""

    __slots__ = ("_conn",)

    def __init__(self, conn: Connection[Cursor]) -> None:
        self._conn = conn

    @property
    def server_version(self) -> int:
        return parse_server_version(self._conn.get_server_info())

    @property
    def last_insert_id(self) -> int:
        return int(self._conn.insert_id())

    def set_charset(self, charset: str) -> None:
        if charset_by_name(charset) is None:
            raise DriverError(f"Can't initialize character set {charset}", code=_CR_CANT_READ_CHARSET)
        try:
            self._conn.set_character_set(charset)
        except pymysql.MySQLError as e:
            raise _to_driver_error(e) from e

    def escape(self, value: str) -> str:
        return self._conn.escape_string(value)

    def execute(self, sql: str) -> Result:
        try:
            with self._conn.cursor() as cursor:
                affected = cursor.execute(sql)
                if cursor.description is None:
                    return Result(affected_rows=affected, insert_id=cursor.lastrowid or 0)
                columns = [column[0] for column in cursor.description]
                return Result(columns, cursor.fetchall(), affected_rows=affected)
        except pymysql.MySQLError as e:
            raise _to_driver_error(e) from e

    def set_autocommit(self, enabled: bool) -> None:
        try:
            self._conn.autocommit(enabled)
        except pymysql.MySQLError as e:
            raise _to_driver_error(e) from e

    def commit(self) -> None:
        try:
            self._conn.commit()
        except pymysql.MySQLError as e:
            raise _to_driver_error(e) from e

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except pymysql.MySQLError as e:
            raise _to_driver_error(e) from e

    def close(self) -> None:
        try:
            self._conn.close()
        except pymysql.MySQLError as e:
            raise _to_driver_error(e) from e

    def stat(self) -> str:
        names = ", ".join(f"'{name}'" for name, _ in _STATUS_FIELDS)
        result = self.execute(f"SHOW GLOBAL STATUS WHERE Variable_name IN ({names})")
        values = {str(row[0]): row[1] for row in iter(result.fetch_row, None)}
        return "  ".join(f"{label}: {values[name]}" for name, label in _STATUS_FIELDS if name in values)


class PyMySQLDriver:
    """Opens `PyMySQLConnection` sessions.

    Connections start in autocommit mode and return plain tuples; the
    character set is applied afterwards by the client through
    `PyMySQLConnection.set_charset`.

    Examples
    --------
    >>> client = DatabaseClient(settings, driver=PyMySQLDriver())
    """

    def connect(self, server: ServerDescriptor) -> PyMySQLConnection:
        try:
            conn = pymysql.connect(
                host=server.host,
                user=server.user,
                password=server.password.get_secret_value(),
                database=server.database or None,
                port=server.port,
                connect_timeout=server.connect_timeout,
                autocommit=True,
                cursorclass=Cursor,
            )
        except pymysql.MySQLError as e:
            raise _to_driver_error(e) from e

        logger.debug("PyMySQL connection opened", host=server.host, port=server.port, database=server.database)
        return PyMySQLConnection(conn)
