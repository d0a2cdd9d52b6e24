"""Connection routing between the primary and the read replicas.

Statements are classified lexically: anything whose trimmed text starts
with ``SELECT`` is a read, everything else is a write. Reads go to a
randomly chosen replica; writes, and reads in single-server deployments,
go to the primary at index 0.

The resolver only opens connections. Which slot a connection lands in,
and the sticky-write rule that sends reads to an existing write
connection, belong to `replicadb.client.DatabaseClient`.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from .core.enums import ConnectionMode
from .exceptions import DatabaseConnectionError, DriverError, InvalidConnectionModeError
from .logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pydantic import SecretStr
    from structlog.stdlib import BoundLogger

    from .config import ServerDescriptor
    from .driver.protocol import Driver, DriverConnection

logger: BoundLogger = get_logger(__name__)

_READ_KEYWORD = "SELECT"


def classify_statement(sql: str) -> ConnectionMode:
    """Return `ConnectionMode.READ` for SELECT statements, WRITE otherwise."""
    if sql.strip()[: len(_READ_KEYWORD)].upper() == _READ_KEYWORD:
        return ConnectionMode.READ
    return ConnectionMode.WRITE


def parse_mode(mode: ConnectionMode | str) -> ConnectionMode:
    """Validate a mode given as enum member or plain string.

    Raises
    ------
    InvalidConnectionModeError
        If ``mode`` is neither ``read`` nor ``write``.
    """
    try:
        return ConnectionMode(mode)
    except ValueError as e:
        msg = f"Invalid connection type selected: {mode!r}"
        raise InvalidConnectionModeError(msg) from e


class ConnectionResolver:
    """Chooses the target server for a mode and opens a connection to it.

    Parameters
    ----------
    servers
        Ordered descriptors; index 0 is the primary, the rest are replicas.
    driver
        Opens the physical connections.
    rng
        Random source for replica selection. Inject a seeded
        ``random.Random`` for reproducible routing.
    """

    __slots__ = ("_driver", "_rng", "_servers")

    def __init__(
        self,
        servers: Sequence[ServerDescriptor],
        driver: Driver,
        rng: random.Random | None = None,
    ) -> None:
        if not servers:
            msg = "At least one server must be configured"
            raise ValueError(msg)
        self._servers = tuple(servers)
        self._driver = driver
        self._rng = rng or random.Random()

    @property
    def servers(self) -> tuple[ServerDescriptor, ...]:
        return self._servers

    @property
    def is_single_server(self) -> bool:
        return len(self._servers) == 1

    def select_index(self, mode: ConnectionMode | str) -> int:
        """Return the descriptor index a new connection for ``mode`` uses."""
        parsed = parse_mode(mode)
        if parsed is ConnectionMode.WRITE or self.is_single_server:
            return 0
        return self._rng.randint(1, len(self._servers) - 1)

    def open(
        self,
        mode: ConnectionMode | str,
        *,
        host: str | None = None,
        user: str | None = None,
        password: str | SecretStr | None = None,
        database: str | None = None,
        port: int | None = None,
        charset: str | None = None,
    ) -> DriverConnection:
        """Open a connection for ``mode``; explicit overrides win over the descriptor.

        Raises
        ------
        InvalidConnectionModeError
            If ``mode`` is not ``read`` or ``write``.
        DatabaseConnectionError
            If connecting or applying the character set fails. A connection
            that was opened before the charset failure is closed first.
        """
        parsed = parse_mode(mode)
        index = self.select_index(parsed)
        server = self._servers[index].with_overrides(
            host=host,
            user=user,
            password=password,
            database=database,
            port=port,
            charset=charset,
        )

        try:
            conn = self._driver.connect(server)
        except DriverError as e:
            logger.error(
                "Database connection failed",
                mode=parsed.value,
                server_index=index,
                address=server.address,
                code=e.code,
                error=e.message,
            )
            msg = f"No database connection: {e.message}"
            raise DatabaseConnectionError(msg, code=e.code) from e

        try:
            conn.set_charset(server.charset)
        except DriverError as e:
            logger.error(
                "Character set negotiation failed",
                mode=parsed.value,
                address=server.address,
                charset=server.charset,
                code=e.code,
                error=e.message,
            )
            self._discard(conn)
            raise DatabaseConnectionError(e.message, code=e.code) from e

        logger.info(
            "Database connection established",
            mode=parsed.value,
            server_index=index,
            address=server.address,
            database=server.database,
            charset=server.charset,
        )
        return conn

    @staticmethod
    def _discard(conn: DriverConnection) -> None:
        try:
            conn.close()
        except DriverError as e:
            logger.warning("Failed to close half-open connection", code=e.code, error=e.message)
