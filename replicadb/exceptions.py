"""Error taxonomy for the database facade.

Every error carries the native ``code`` and ``message`` reported by the
driver (``0`` when the error originates in this package).
"""

from __future__ import annotations


class DatabaseError(Exception):
    """Base class for all errors raised by replicadb."""

    def __init__(self, message: str, code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}" if self.code else self.message


class DriverError(DatabaseError):
    """Raised by driver implementations; translated by the client."""


class DatabaseConnectionError(DatabaseError):
    """Connecting or negotiating the character set failed."""


class InvalidConnectionModeError(DatabaseConnectionError):
    """A connection mode other than ``read`` or ``write`` was requested."""


class QueryError(DatabaseError):
    """Statement execution failed."""

    def __init__(self, message: str, code: int = 0, sql: str = "") -> None:
        super().__init__(message, code)
        self.sql = sql

    def __str__(self) -> str:
        return f"{super().__str__()} [ {self.sql} ]"


class TemplateError(QueryError):
    """The SQL template and its arguments do not match."""


class TransactionError(DatabaseError):
    """Toggling autocommit, committing or rolling back failed."""


class ResultFreedError(DatabaseError):
    """The result was read after being freed."""
