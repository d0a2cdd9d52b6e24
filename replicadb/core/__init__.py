"""Core module exports."""

from __future__ import annotations

from .enums import ConnectionMode, TransactionState

__all__ = [
    "ConnectionMode",
    "TransactionState",
]
