"""Database client routing statements between a primary and read replicas.

Routing
-------
Statements are classified lexically (`replicadb.resolver.classify_statement`):
SELECTs are reads, everything else is a write. Connections are opened
lazily, on first use:

- writes always use the write connection to the primary (index 0)
- reads use a read connection to a random replica (index >= 1)
- once a write connection exists, reads use it too (sticky write)

The sticky-write rule gives read-your-writes consistency: after an
``INSERT`` the following ``SELECT`` cannot land on a lagging replica that
has not yet applied it::

    client.insert("INSERT INTO users (name) VALUES ('%s')", "Alice")
    client.select_row("SELECT * FROM users WHERE name = '%s'", "Alice")  # primary

With a single configured server both slots share one connection.

Results
-------
Only the outcome of the most recent statement is retained. Executing a new
statement frees the previous `Result`. The convenience accessors (``select``,
``insert``, ...) return `NO_RESULT` instead of raising when the statement
fails; `DatabaseClient.query` raises `QueryError`.

Usage
-----
>>> with DatabaseClient(settings) as db:
...     user_id = db.insert("INSERT INTO users (name) VALUES ('%s')", "Alice")
...     with db.transaction():
...         db.update("UPDATE users SET name = '%s' WHERE id = %d", "Bob", user_id)
...     names = db.select_flat("SELECT name FROM users ORDER BY id")
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Self

from .config import DatabaseSettings, ServerDescriptor
from .core.enums import ConnectionMode, TransactionState
from .driver.mysql import PyMySQLDriver
from .exceptions import DatabaseConnectionError, DatabaseError, DriverError, QueryError, TransactionError
from .executor import render_sql
from .logger import get_logger
from .resolver import ConnectionResolver, classify_statement, parse_mode
from .result import NO_RESULT, NoResult, Result, Row

if TYPE_CHECKING:
    import random
    import types
    from collections.abc import Callable, Iterator, Sequence

    from pydantic import SecretStr
    from structlog.stdlib import BoundLogger

    from .driver.protocol import Driver, DriverConnection
    from .executor import SqlValue

logger: BoundLogger = get_logger(__name__)


class DatabaseClient:
    """Facade over one write connection and one read connection.

    The client is not meant to be shared between workers; a re-entrant lock
    still serialises connection resolution and result bookkeeping so that
    accidental sharing cannot corrupt its state.

    Parameters
    ----------
    servers
        `DatabaseSettings` (its active group is used) or an ordered sequence
        of descriptors. Index 0 is the primary.
    driver
        Opens physical connections. Defaults to `PyMySQLDriver`.
    rng
        Random source for replica selection.
    """

    def __init__(
        self,
        servers: DatabaseSettings | Sequence[ServerDescriptor],
        driver: Driver | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if isinstance(servers, DatabaseSettings):
            servers = servers.servers
        if driver is None:
            driver = PyMySQLDriver()

        self._resolver = ConnectionResolver(servers, driver, rng)
        self._write_conn: DriverConnection | None = None
        self._read_conn: DriverConnection | None = None
        self._in_transaction = False
        self._last_result: Result | None = None
        self._last_error: DatabaseError | None = None
        self._last_query: str | None = None
        self._lock = threading.RLock()

    @classmethod
    def from_settings(
        cls,
        settings: DatabaseSettings | None = None,
        driver: Driver | None = None,
    ) -> Self:
        """Create a client from settings, loading them from the environment if omitted."""
        return cls(settings if settings is not None else DatabaseSettings(), driver)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "DatabaseClient exiting with exception",
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        self.close()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def connect(
        self,
        mode: ConnectionMode | str = ConnectionMode.READ,
        *,
        host: str | None = None,
        user: str | None = None,
        password: str | SecretStr | None = None,
        database: str | None = None,
        port: int | None = None,
        charset: str | None = None,
    ) -> DriverConnection:
        """Open a connection for ``mode`` and store it in its slot.

        With a single configured server the connection fills both slots.
        A connection already occupying the slot is closed first.

        Raises
        ------
        DatabaseConnectionError
            If the connection or charset negotiation fails, or ``mode`` is
            invalid. No connection is stored in that case.
        """
        parsed = parse_mode(mode)
        with self._lock:
            try:
                conn = self._resolver.open(
                    parsed,
                    host=host,
                    user=user,
                    password=password,
                    database=database,
                    port=port,
                    charset=charset,
                )
            except DatabaseError as e:
                self._last_error = e
                raise

            if self._resolver.is_single_server:
                self._release(self._write_conn)
                self._write_conn = self._read_conn = conn
                self._in_transaction = False
            elif parsed is ConnectionMode.WRITE:
                self._release(self._write_conn)
                self._write_conn = conn
                self._in_transaction = False
            else:
                self._release(self._read_conn)
                self._read_conn = conn
            return conn

    def close(self, mode: ConnectionMode | str | None = None) -> bool:
        """Close the read, the write, or (``mode=None``) both connections.

        Closed slots are cleared so the next statement reconnects. Closing
        the write connection ends sticky-write routing.

        Returns
        -------
        bool
            False if the driver reported an error while closing.
        """
        with self._lock:
            if mode is None:
                modes = (ConnectionMode.READ, ConnectionMode.WRITE)
                self.free()
            else:
                modes = (parse_mode(mode),)

            targets: list[DriverConnection] = []
            for target_mode in modes:
                conn = self._slot(target_mode)
                if conn is not None and all(conn is not seen for seen in targets):
                    targets.append(conn)

            ok = True
            for conn in targets:
                ok = self._close_connection(conn) and ok
                if conn is self._read_conn:
                    self._read_conn = None
                if conn is self._write_conn:
                    self._write_conn = None
                    self._in_transaction = False
            return ok

    @property
    def is_connected(self) -> bool:
        return self._write_conn is not None or self._read_conn is not None

    def _slot(self, mode: ConnectionMode) -> DriverConnection | None:
        return self._write_conn if mode is ConnectionMode.WRITE else self._read_conn

    def _connection_for(self, mode: ConnectionMode) -> tuple[DriverConnection, ConnectionMode]:
        if self._write_conn is not None:
            return self._write_conn, ConnectionMode.WRITE
        if mode is ConnectionMode.WRITE:
            return self.connect(ConnectionMode.WRITE), ConnectionMode.WRITE
        if self._read_conn is not None:
            return self._read_conn, ConnectionMode.READ
        return self.connect(ConnectionMode.READ), ConnectionMode.READ

    def _ensure_write_connection(self) -> DriverConnection:
        if self._write_conn is None:
            return self.connect(ConnectionMode.WRITE)
        return self._write_conn

    def _release(self, conn: DriverConnection | None) -> None:
        if conn is None:
            return
        if conn is self._read_conn and conn is not self._write_conn:
            self._read_conn = None
        self._close_connection(conn)

    @staticmethod
    def _close_connection(conn: DriverConnection) -> bool:
        try:
            conn.close()
        except DriverError as e:
            logger.warning("Database connection failed to close", code=e.code, error=e.message)
            return False
        logger.info("Database connection closed")
        return True

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def last_error(self) -> DatabaseError | None:
        """Error raised by the most recent connect or statement, if any."""
        return self._last_error

    @property
    def last_query(self) -> str | None:
        """Rendered SQL of the most recent statement, failed or not."""
        return self._last_query

    @property
    def insert_id(self) -> int | None:
        if self._write_conn is None:
            return None
        return self._write_conn.last_insert_id

    @property
    def num_rows(self) -> int | None:
        result = self._last_result
        if result is None or result.freed or not result.is_row_set:
            return None
        return result.num_rows

    @property
    def affected_rows(self) -> int | None:
        result = self._last_result
        if result is None or result.freed:
            return None
        return result.affected_rows

    @property
    def transaction_state(self) -> TransactionState:
        if self._write_conn is None:
            return TransactionState.NO_WRITE_CONNECTION
        if self._in_transaction:
            return TransactionState.IN_TRANSACTION
        return TransactionState.AUTOCOMMIT

    def free(self) -> bool:
        """Free the last result; True if a live result was released."""
        with self._lock:
            result, self._last_result = self._last_result, None
            if result is None or result.freed:
                return False
            result.free()
            return True

    def stat(self, mode: ConnectionMode | str = ConnectionMode.READ) -> str | None:
        """Server status line of the connection in ``mode``'s slot, None if not connected.

        Raises
        ------
        DatabaseConnectionError
            If the connected server cannot report its status.
        """
        parsed = parse_mode(mode)
        with self._lock:
            conn = self._slot(parsed)
            if conn is None:
                return None
            try:
                return conn.stat()
            except DriverError as e:
                logger.error("Server status unavailable", mode=parsed.value, code=e.code, error=e.message)
                error = DatabaseConnectionError(e.message, code=e.code)
                self._last_error = error
                raise error from e

    def server_version(self, mode: ConnectionMode | str = ConnectionMode.READ) -> int | None:
        """Numeric server version (``40100`` for 4.1.0), None if not connected."""
        conn = self._slot(parse_mode(mode))
        if conn is None:
            return None
        return conn.server_version

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """Disable autocommit on the write connection, opening it if needed."""
        with self._lock:
            conn = self._ensure_write_connection()
            self._run_transaction_step("begin", lambda: conn.set_autocommit(False))
            self._in_transaction = True
            logger.debug("Transaction started")

    def commit(self) -> None:
        """Commit pending work and re-enable autocommit.

        Without a preceding `begin` this is a no-op commit on the write
        connection.

        If the commit fails, pending work is rolled back and autocommit is
        restored before `TransactionError` is raised.
        """
        with self._lock:
            conn = self._ensure_write_connection()
            try:
                self._run_transaction_step("commit", conn.commit)
            except TransactionError:
                self._abandon_transaction(conn)
                raise
            self._restore_autocommit(conn, "commit")
            logger.debug("Transaction committed")

    def rollback(self) -> None:
        """Roll back pending work and re-enable autocommit."""
        with self._lock:
            conn = self._ensure_write_connection()
            try:
                self._run_transaction_step("rollback", conn.rollback)
            except TransactionError:
                self._abandon_transaction(conn)
                raise
            self._restore_autocommit(conn, "rollback")
            logger.debug("Transaction rolled back")

    @contextmanager
    def transaction(self) -> Iterator[Self]:
        """Run the block in a transaction on the write connection.

        Commits on normal exit; rolls back and re-raises on exception.

        Examples
        --------
        >>> with db.transaction():
        ...     db.update("UPDATE accounts SET balance = balance - %d WHERE id = %d", 10, 1)
        ...     db.update("UPDATE accounts SET balance = balance + %d WHERE id = %d", 10, 2)
        """
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def _run_transaction_step(self, step: str, action: Callable[[], None]) -> None:
        try:
            action()
        except DriverError as e:
            logger.error("Transaction control failed", step=step, code=e.code, error=e.message)
            error = TransactionError(e.message, code=e.code)
            self._last_error = error
            raise error from e

    def _restore_autocommit(self, conn: DriverConnection, step: str) -> None:
        try:
            self._run_transaction_step(step, lambda: conn.set_autocommit(True))
        finally:
            self._in_transaction = False

    def _abandon_transaction(self, conn: DriverConnection) -> None:
        # SET autocommit = 1 commits pending work; it only follows a successful rollback.
        self._in_transaction = False
        try:
            conn.rollback()
            conn.set_autocommit(True)
        except DriverError as e:
            logger.warning("Transaction cleanup failed, dropping write connection", code=e.code, error=e.message)
            self.close(ConnectionMode.WRITE)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def query(self, template: str, *args: SqlValue) -> Result:
        """Render and execute a statement; the entry point of every accessor.

        Parameters
        ----------
        template
            SQL with positional ``%s`` / ``%d`` / ``%f`` placeholders.
        *args
            Values substituted in order after escaping with the target
            connection's native escaping plus ``%``/``_`` wildcard escaping.

        Returns
        -------
        Result
            The new current result. The previous one has been freed.

        Raises
        ------
        DatabaseConnectionError
            If the required connection cannot be established.
        QueryError
            If the template cannot be rendered or the statement fails.
        """
        with self._lock:
            conn, route = self._connection_for(classify_statement(template))

            try:
                sql = render_sql(template, args, conn.escape)
            except QueryError as e:
                self._last_query = template
                self._last_error = e
                self.free()
                logger.error("Statement could not be rendered", error=e.message, template=template)
                raise

            self.free()
            self._last_query = sql
            logger.debug("Executing statement", route=route.value, sql=sql)

            try:
                result = conn.execute(sql)
            except DriverError as e:
                error = QueryError(e.message, code=e.code, sql=sql)
                self._last_error = error
                logger.error("Statement failed", route=route.value, code=e.code, error=e.message, sql=sql)
                raise error from e

            self._last_result = result
            self._last_error = None
            return result

    def _try_query(self, template: str, args: Sequence[SqlValue]) -> Result | NoResult:
        try:
            return self.query(template, *args)
        except QueryError:
            return NO_RESULT

    def replace(self, template: str, *args: SqlValue) -> int | NoResult:
        """Run a REPLACE statement; returns the affected row count."""
        result = self._try_query(template, args)
        if result is NO_RESULT:
            return NO_RESULT
        return result.affected_rows

    def insert(self, template: str, *args: SqlValue) -> int | NoResult:
        """Run an INSERT statement; returns the id generated on the write connection."""
        result = self._try_query(template, args)
        if result is NO_RESULT or self._write_conn is None:
            return NO_RESULT
        return self._write_conn.last_insert_id

    def update(self, template: str, *args: SqlValue) -> int | NoResult:
        """Run an UPDATE statement; returns the affected row count."""
        result = self._try_query(template, args)
        if result is NO_RESULT:
            return NO_RESULT
        return result.affected_rows

    def delete(self, template: str, *args: SqlValue) -> int | NoResult:
        """Run a DELETE statement; returns the affected row count."""
        result = self._try_query(template, args)
        if result is NO_RESULT:
            return NO_RESULT
        return result.affected_rows

    def select(self, template: str, *args: SqlValue) -> list[Row] | NoResult:
        """All rows as column-name mappings; ``[]`` for zero rows."""
        result = self._try_query(template, args)
        if result is NO_RESULT:
            return NO_RESULT
        return result.all_rows()

    def select_object(self, template: str, *args: SqlValue) -> Result | NoResult:
        """The raw `Result` handle for manual iteration."""
        return self._try_query(template, args)

    def select_flat(self, template: str, *args: SqlValue) -> list[Any] | NoResult:
        """Every column of every row in row-major order.

        Meant for single-column queries returning many rows::

            ids = db.select_flat("SELECT id FROM users WHERE active = %d", 1)
        """
        result = self._try_query(template, args)
        if result is NO_RESULT:
            return NO_RESULT
        return result.flat()

    def select_row(self, template: str, *args: SqlValue) -> Row | None | NoResult:
        """The first row as a mapping, None when the query matched nothing."""
        result = self._try_query(template, args)
        if result is NO_RESULT:
            return NO_RESULT
        return result.first_row()

    def select_value(self, template: str, *args: SqlValue) -> Any:
        """The first column of the first row.

        Falsy values (``0``, ``""``) are returned as stored. None means zero
        rows or SQL NULL; `NO_RESULT` means the statement failed.
        """
        result = self._try_query(template, args)
        if result is NO_RESULT:
            return NO_RESULT
        return result.first_value()
