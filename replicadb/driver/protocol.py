"""Driver capability consumed by the client.

A driver opens connections to one server; the client never talks to the
wire protocol directly. Implementations report every failure as
`replicadb.exceptions.DriverError` carrying the native error code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ServerDescriptor
    from ..result import Result


@runtime_checkable
class DriverConnection(Protocol):
    """An open session to one physical server."""

    @property
    def server_version(self) -> int:
        """Numeric server version, ``major * 10000 + minor * 100 + patch``."""
        ...

    @property
    def last_insert_id(self) -> int: ...

    def set_charset(self, charset: str) -> None: ...

    def escape(self, value: str) -> str:
        """Escape ``value`` for inclusion inside a quoted SQL string literal."""
        ...

    def execute(self, sql: str) -> Result: ...

    def set_autocommit(self, enabled: bool) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...

    def stat(self) -> str:
        """Human readable server status line."""
        ...


class Driver(Protocol):
    def connect(self, server: ServerDescriptor) -> DriverConnection: ...
