from __future__ import annotations

from enum import StrEnum


class ConnectionMode(StrEnum):
    READ = "read"
    WRITE = "write"


class TransactionState(StrEnum):
    NO_WRITE_CONNECTION = "no_write_connection"
    AUTOCOMMIT = "autocommit"
    IN_TRANSACTION = "in_transaction"
