"""Argument escaping and printf-style rendering of SQL templates.

Templates use classic positional ``%`` placeholders; the first argument fills
the first placeholder and so on::

    render_sql("SELECT * FROM users WHERE name = '%s' AND age > %d", ["O'Brien", 30], conn.escape)

String arguments are escaped with the connection's own escaping function and
then have the ``LIKE`` wildcards ``%`` and ``_`` backslash-escaped, so a value
is always matched literally, inside ``=`` comparisons and ``LIKE`` patterns
alike.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .exceptions import TemplateError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

type SqlValue = str | int | float | bool | None
type Rendered = str | int | float

_WILDCARDS = re.compile(r"([%_])")


def escape_wildcards(value: str) -> str:
    return _WILDCARDS.sub(r"\\\1", value)


def escape_value(value: SqlValue, escape: Callable[[str], str]) -> Rendered:
    """Prepare one argument for substitution.

    Parameters
    ----------
    value
        The raw argument.
    escape
        The connection's native string escaping function.

    Returns
    -------
    Rendered
        Escaped text for strings, ``1``/``0`` for booleans, ``NULL`` for
        None; ints and floats are returned as-is so ``%d`` and ``%f`` work.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int | float):
        return value
    if isinstance(value, str):
        return escape_wildcards(escape(value))
    msg = f"Unsupported SQL argument type: {type(value).__name__}"
    raise TypeError(msg)


def render_sql(template: str, args: Sequence[SqlValue], escape: Callable[[str], str]) -> str:
    """Substitute escaped ``args`` into ``template``.

    Without arguments the template is returned verbatim, so literal ``%``
    characters need no doubling in argument-free statements.

    Raises
    ------
    TemplateError
        If the placeholders and the arguments do not match.
    """
    if not args:
        return template

    try:
        escaped = tuple(escape_value(arg, escape) for arg in args)
        return template % escaped
    except (TypeError, ValueError, KeyError) as e:
        msg = f"Could not render SQL template: {e}"
        raise TemplateError(msg, sql=template) from e
