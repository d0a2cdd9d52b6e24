"""Driver protocol and the bundled PyMySQL implementation."""

from __future__ import annotations

from .mysql import PyMySQLConnection, PyMySQLDriver, parse_server_version
from .protocol import Driver, DriverConnection

__all__ = [
    "Driver",
    "DriverConnection",
    "PyMySQLConnection",
    "PyMySQLDriver",
    "parse_server_version",
]
