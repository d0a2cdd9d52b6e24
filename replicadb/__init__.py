"""MySQL access facade with primary/replica routing.

This package provides:

- `DatabaseClient`: routes statements to a write or read connection, with
  sticky-write consistency and convenience accessors
- `DatabaseSettings` / `ServerDescriptor`: server topology configuration
- `PyMySQLDriver`: the default driver

Usage
-----
::

    settings = DatabaseSettings.with_replica_hosts(primary, ["replica-1", "replica-2"])
    with DatabaseClient(settings) as db:
        db.insert("INSERT INTO users (name) VALUES ('%s')", "Alice")
        rows = db.select("SELECT * FROM users WHERE name LIKE '%s%%'", "Al")
"""

from __future__ import annotations

from .client import DatabaseClient
from .config import DatabaseSettings, ServerDescriptor
from .core.enums import ConnectionMode, TransactionState
from .driver import Driver, DriverConnection, PyMySQLDriver
from .exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    DriverError,
    InvalidConnectionModeError,
    QueryError,
    ResultFreedError,
    TemplateError,
    TransactionError,
)
from .executor import SqlValue
from .resolver import ConnectionResolver, classify_statement
from .result import NO_RESULT, NoResult, Result, Row

__all__ = [
    "NO_RESULT",
    "ConnectionMode",
    "ConnectionResolver",
    "DatabaseClient",
    "DatabaseConnectionError",
    "DatabaseError",
    "DatabaseSettings",
    "Driver",
    "DriverConnection",
    "DriverError",
    "InvalidConnectionModeError",
    "NoResult",
    "PyMySQLDriver",
    "QueryError",
    "Result",
    "ResultFreedError",
    "Row",
    "ServerDescriptor",
    "SqlValue",
    "TemplateError",
    "TransactionError",
    "TransactionState",
    "classify_statement",
]
