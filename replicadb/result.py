"""Outcome of a single executed statement.

A `Result` is either a row set (``columns`` is non-empty) or write metadata
(affected rows and insert id). Row sets keep a fetch cursor so callers can
consume them row by row, the way a driver result handle is read.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Final, Literal

from .exceptions import ResultFreedError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

type Row = dict[str, Any]


class NoResult(Enum):
    """Sentinel type returned by accessors when the statement failed.

    Falsy, so ``if not rows:`` keeps working, but distinct from ``None``,
    ``[]`` and ``0`` so a failure is never mistaken for an empty result.
    """

    NO_RESULT = "no_result"

    def __bool__(self) -> Literal[False]:
        return False

    def __repr__(self) -> str:
        return "NO_RESULT"


NO_RESULT: Final = NoResult.NO_RESULT


class Result:
    """Row set or write outcome of the most recently executed statement."""

    __slots__ = ("_affected_rows", "_columns", "_cursor", "_freed", "_insert_id", "_rows")

    def __init__(
        self,
        columns: Sequence[str] = (),
        rows: Iterable[Sequence[Any]] = (),
        *,
        affected_rows: int = 0,
        insert_id: int = 0,
    ) -> None:
        self._columns = tuple(columns)
        self._rows = [tuple(row) for row in rows]
        self._affected_rows = affected_rows
        self._insert_id = insert_id
        self._cursor = 0
        self._freed = False

    def __repr__(self) -> str:
        if self._freed:
            return "Result(freed)"
        if self.is_row_set:
            return f"Result(columns={self._columns!r}, num_rows={len(self._rows)})"
        return f"Result(affected_rows={self._affected_rows}, insert_id={self._insert_id})"

    def __iter__(self) -> Iterator[Row]:
        while (row := self.fetch_assoc()) is not None:
            yield row

    @property
    def is_row_set(self) -> bool:
        return bool(self._columns)

    @property
    def freed(self) -> bool:
        return self._freed

    @property
    def columns(self) -> tuple[str, ...]:
        self._ensure_alive()
        return self._columns

    @property
    def num_rows(self) -> int:
        self._ensure_alive()
        return len(self._rows)

    @property
    def affected_rows(self) -> int:
        self._ensure_alive()
        return self._affected_rows

    @property
    def insert_id(self) -> int:
        self._ensure_alive()
        return self._insert_id

    def fetch_row(self) -> tuple[Any, ...] | None:
        """Return the next row as a tuple, or None when exhausted."""
        self._ensure_alive()
        if self._cursor >= len(self._rows):
            return None
        row = self._rows[self._cursor]
        self._cursor += 1
        return row

    def fetch_assoc(self) -> Row | None:
        """Return the next row as a column-name mapping, or None when exhausted."""
        row = self.fetch_row()
        if row is None:
            return None
        return dict(zip(self._columns, row, strict=True))

    def seek(self, offset: int) -> None:
        """Move the fetch cursor to ``offset`` (0-based)."""
        self._ensure_alive()
        if not 0 <= offset <= len(self._rows):
            msg = f"Row offset {offset} out of range for {len(self._rows)} rows"
            raise IndexError(msg)
        self._cursor = offset

    def free(self) -> None:
        """Release the buffered rows; further reads raise `ResultFreedError`."""
        self._rows = []
        self._freed = True

    # Shapes used by the client accessors. Each consumes the remaining rows.

    def all_rows(self) -> list[Row]:
        return list(self)

    def flat(self) -> list[Any]:
        values: list[Any] = []
        while (row := self.fetch_row()) is not None:
            values.extend(row)
        return values

    def first_row(self) -> Row | None:
        return self.fetch_assoc()

    def first_value(self) -> Any:
        row = self.fetch_row()
        if not row:
            return None
        return row[0]

    def _ensure_alive(self) -> None:
        if self._freed:
            msg = "Result has been freed"
            raise ResultFreedError(msg)
