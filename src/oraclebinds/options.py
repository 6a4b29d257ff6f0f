from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pandas as pd
from oraclebinds.types import OUT_FORMATS, Column

from libb import ConfigOptions, scriptname

__all__ = [
    'DEFAULT_MAX_SIZE',
    'DEFAULT_CURSOR_FETCH_SIZE',
    'DatabaseOptions',
    'iterdict_data_loader',
    'pandas_data_loader',
]

# Buffer size for string OUT/INOUT binds declared without one
DEFAULT_MAX_SIZE = 2000

# Rows read from each cursor returned through an OUT bind
DEFAULT_CURSOR_FETCH_SIZE = 10000


def iterdict_data_loader(data, columns, **kwargs) -> list:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


def pandas_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    Column metadata is kept in the DataFrame.attrs attribute.
    """
    names = Column.get_names(columns)
    if not data:
        df = pd.DataFrame(columns=names)
    else:
        df = pd.DataFrame.from_records(list(data), columns=names)
    df.attrs['column_types'] = {col.name: col.to_dict() for col in columns}
    return df


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    Credential bundle: `user`, `password`, `connection_string`, `thin_mode`.

    Execution options:
    - auto_commit: Commit after each successful statement (default: True)
    - out_format: Row shape, `object` (dicts) or `array` (tuples) (default: object)
    - max_rows: Bound on rows read from the statement's result set, 0 for no bound
    - default_max_size: Buffer for string OUT/INOUT binds (default: 2000)
    - cursor_fetch_size: Rows read from each returned cursor (default: 10000)
    """
    user: str = None
    password: str = None
    connection_string: str = None
    thin_mode: bool = True
    timeout: int = 0
    appname: str = None
    auto_commit: bool = True
    out_format: str = 'object'
    max_rows: int = 0
    default_max_size: int = DEFAULT_MAX_SIZE
    cursor_fetch_size: int = DEFAULT_CURSOR_FETCH_SIZE
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        missing = [name for name in ('user', 'password', 'connection_string')
                   if not getattr(self, name)]
        if missing:
            raise ValueError(f'Missing required credentials: {", ".join(missing)}')
        if self.out_format not in OUT_FORMATS:
            raise ValueError(f'out_format must be one of: {list(OUT_FORMATS)}')
        if self.max_rows < 0:
            raise ValueError('max_rows must not be negative')
        if self.default_max_size <= 0:
            raise ValueError('default_max_size must be positive')
        if self.cursor_fetch_size <= 0:
            raise ValueError('cursor_fetch_size must be positive')
        self.appname = self.appname or scriptname() or 'python_console'
        if self.data_loader is None:
            self.data_loader = iterdict_data_loader
