"""
Output bind normalization.

Output binds arrive as nothing, a mapping of bind name to value, or (for
RETURNING ... INTO) mappings and arrays whose leaves may be cursors. Every
value is classified into one of a closed set of kinds and resolved by a
single recursive function:

    CURSOR   → rows fetched from the cursor, cursor released
    SEQUENCE → new list, same length and order, elements resolved
    MAPPING  → new dict, same keys, values resolved
    SCALAR   → unchanged
"""
import logging
from collections.abc import Mapping
from enum import Enum, auto
from typing import Any

from oraclebinds.exceptions import CursorFetchError
from oraclebinds.options import DEFAULT_CURSOR_FETCH_SIZE
from oraclebinds.types import CursorHandle

logger = logging.getLogger(__name__)

__all__ = [
    'OutValueKind',
    'classify',
    'read_cursor',
    'release_cursors',
    'normalize_value',
    'normalize_out_binds',
]


class OutValueKind(Enum):
    """Kinds of values found in an output bind section."""
    SCALAR = auto()
    SEQUENCE = auto()
    MAPPING = auto()
    CURSOR = auto()


def classify(value: Any) -> OutValueKind:
    """Classify an output value."""
    if isinstance(value, CursorHandle):
        return OutValueKind.CURSOR
    if isinstance(value, Mapping):
        return OutValueKind.MAPPING
    if isinstance(value, (list, tuple)):
        return OutValueKind.SEQUENCE
    return OutValueKind.SCALAR


def _release_after_failure(handle: CursorHandle) -> None:
    try:
        handle.close()
    except Exception as e:
        logger.error(f'Error releasing cursor after failed fetch: {e}')


def read_cursor(handle: CursorHandle, fetch_size: int = DEFAULT_CURSOR_FETCH_SIZE) -> list:
    """Fetch up to fetch_size rows from a cursor, then release it.

    Raises
        CursorFetchError: when fetching or releasing fails
    """
    try:
        rows = handle.fetch(fetch_size)
    except Exception as err:
        _release_after_failure(handle)
        raise CursorFetchError(f'Failed to fetch rows from cursor: {err}') from err

    try:
        handle.close()
    except Exception as err:
        raise CursorFetchError(f'Failed to release cursor: {err}') from err

    if len(rows) >= fetch_size:
        logger.warning(f'Cursor returned {fetch_size} rows, the page limit; remaining rows were not read')
    logger.debug(f'Read {len(rows)} rows from cursor')
    return rows


def release_cursors(value: Any) -> None:
    """Release every cursor reachable from value that is still open."""
    kind = classify(value)
    if kind is OutValueKind.CURSOR:
        if not value.closed:
            _release_after_failure(value)
    elif kind is OutValueKind.SEQUENCE:
        for item in value:
            release_cursors(item)
    elif kind is OutValueKind.MAPPING:
        for item in value.values():
            release_cursors(item)


def normalize_value(value: Any, fetch_size: int = DEFAULT_CURSOR_FETCH_SIZE) -> Any:
    """Resolve cursors in value recursively, leaving everything else unchanged."""
    kind = classify(value)
    if kind is OutValueKind.CURSOR:
        return read_cursor(value, fetch_size)
    if kind is OutValueKind.SEQUENCE:
        return [normalize_value(item, fetch_size) for item in value]
    if kind is OutValueKind.MAPPING:
        return {key: normalize_value(item, fetch_size) for key, item in value.items()}
    return value


def normalize_out_binds(out_binds: Any, fetch_size: int = DEFAULT_CURSOR_FETCH_SIZE) -> Any:
    """Normalize an output bind section.

    Absent output binds stay absent. On failure every cursor still open in
    out_binds is released before the error propagates.

    Raises
        CursorFetchError: when any cursor cannot be read or released
    """
    if out_binds is None:
        return None
    try:
        return normalize_value(out_binds, fetch_size)
    except CursorFetchError:
        release_cursors(out_binds)
        raise
