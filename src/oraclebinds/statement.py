"""
Statement orchestration.

    acquire connection → compile binds → execute → normalize output binds
        → assemble StatementResult → release connection (always)

A ConnectionWrapper passed in place of options is used as is and left open
for its owner.

Validation and execution errors abort the whole invocation; no partial
result is ever returned. A failure to release the connection is logged and
never replaces the outcome already determined.
"""
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import oracledb
from oraclebinds.binds import compile_binds
from oraclebinds.connection import ConnectionWrapper, connect
from oraclebinds.exceptions import query_error_for
from oraclebinds.executor import Executor
from oraclebinds.normalize import normalize_out_binds
from oraclebinds.options import DatabaseOptions
from oraclebinds.types import ExecuteOptions, ParameterDescriptor
from oraclebinds.types import RawResult, StatementResult

from libb import load_options

logger = logging.getLogger(__name__)

__all__ = ['execute_statement', 'assemble_result', 'release_connection']

Params = Iterable[ParameterDescriptor | Mapping[str, Any]] | None


def release_connection(cn: Executor) -> None:
    """Close a connection, logging instead of raising on failure."""
    try:
        cn.close()
    except Exception as e:
        logger.error(f'Failed to close the database connection: {e}')


def assemble_result(raw: RawResult, out_binds: Any, options: DatabaseOptions) -> StatementResult:
    """Build the normalized record from a raw result and resolved output binds."""
    meta_data = None
    rows = raw.rows
    if raw.columns is not None:
        meta_data = [col.to_dict() for col in raw.columns]
        rows = options.data_loader(raw.rows or [], raw.columns)
    return StatementResult(
        meta_data=meta_data,
        rows=rows,
        rows_affected=raw.rows_affected,
        last_row_id=raw.last_row_id,
        out_binds=out_binds,
    )


def _execute_options(options: DatabaseOptions) -> ExecuteOptions:
    return ExecuteOptions(
        out_format=options.out_format,
        auto_commit=options.auto_commit,
        max_rows=options.max_rows,
    )


def execute_statement(options: DatabaseOptions | ConnectionWrapper | dict[str, Any] | str, sql: str,
                      params: Params = None, config: Any | None = None,
                      connector: Callable[[DatabaseOptions], Executor] | None = None,
                      **kw: Any) -> StatementResult:
    """Execute one parameterized statement and return its normalized record.

    Args:
        options: DatabaseOptions, a dict of options, a configuration path, or an
            acquired ConnectionWrapper (left open for the caller)
        sql: SQL text with `:name` placeholders
        params: parameter descriptors or host mappings describing them
        config: Configuration object (for loading from config files)
        connector: acquires a connection for the options (default: `connect`)
        **kw: Additional keyword arguments to override options

    Raises
        ValidationError: for invalid parameter descriptors
        ConnectionFailure: when no connection can be acquired
        QueryError: when the statement or a returned cursor fails
    """
    owned = True
    if isinstance(options, ConnectionWrapper):
        cn, options, owned = options, options.options, False
    else:
        if not isinstance(options, DatabaseOptions):
            options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
            options = options_func(options, config, **kw)
        cn = (connector or connect)(options)
        if not options.auto_commit:
            logger.warning('auto_commit is off on a connection opened for this statement; '
                           'uncommitted changes are rolled back when it closes')

    try:
        compiled = compile_binds(sql, params, default_max_size=options.default_max_size)
        raw = cn.execute(compiled.sql, compiled.binds, _execute_options(options))
        out_binds = normalize_out_binds(raw.out_binds, fetch_size=options.cursor_fetch_size)
        result = assemble_result(raw, out_binds, options)
    except oracledb.Error as err:
        raise query_error_for(err) from err
    finally:
        if owned:
            release_connection(cn)

    logger.debug(f'Statement completed: rows_affected={result.rows_affected}, '
                 f'out_binds={list(result.out_binds or [])}')
    return result
