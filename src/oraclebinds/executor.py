"""
Statement execution against python-oracledb.

Implements the executor contract consumed by `oraclebinds.statement`:

    execute(sql, binds, options) -> RawResult
    close() -> None

Wire types are mapped to driver types here and nowhere else. Cursors returned
through output binds are wrapped in CursorHandle before leaving this module.
"""
import logging
import time
from functools import wraps
from typing import Any, Protocol

import oracledb
from oraclebinds.exceptions import query_error_for
from oraclebinds.types import OUT_FORMAT_OBJECT, BindContract, CursorHandle
from oraclebinds.types import Direction, DictRowFactory, ExecuteOptions
from oraclebinds.types import RawResult, WireType
from oraclebinds.types import columns_from_cursor_description

logger = logging.getLogger(__name__)

__all__ = [
    'Executor',
    'OracleExecutor',
    'db_type_for',
    'bind_parameters',
    'wrap_cursors',
]

_DB_TYPES = {
    WireType.STRING: oracledb.DB_TYPE_VARCHAR,
    WireType.NUMBER: oracledb.DB_TYPE_NUMBER,
    WireType.DATE: oracledb.DB_TYPE_DATE,
    WireType.CURSOR: oracledb.DB_TYPE_CURSOR,
}


class Executor(Protocol):
    """Anything that can run a compiled statement."""

    def execute(self, sql: str, binds: dict[str, BindContract],
                options: ExecuteOptions | None = None) -> RawResult: ...

    def close(self) -> None: ...


def db_type_for(wire_type: WireType) -> Any:
    """Return the oracledb type for a wire type."""
    return _DB_TYPES[wire_type]


def bind_parameters(cursor: Any, binds: dict[str, BindContract]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Turn bind contracts into oracledb parameters.

    IN binds are passed as values, typed through setinputsizes(). OUT and
    INOUT binds become cursor variables sized by max_size.

    Returns
        Tuple of (parameters, output_variables)
    """
    params: dict[str, Any] = {}
    input_sizes: dict[str, Any] = {}
    out_vars: dict[str, Any] = {}

    for name, bind in binds.items():
        db_type = db_type_for(bind.wire_type)
        if bind.direction is Direction.IN:
            params[name] = bind.value
            input_sizes[name] = db_type
            continue

        var = cursor.var(db_type, size=bind.max_size or 0)
        if bind.direction is Direction.INOUT:
            var.setvalue(0, bind.value)
        params[name] = var
        out_vars[name] = var

    if input_sizes:
        cursor.setinputsizes(**input_sizes)
    return params, out_vars


def wrap_cursors(value: Any, out_format: str = OUT_FORMAT_OBJECT) -> Any:
    """Replace driver cursors in an output value with CursorHandle."""
    if isinstance(value, oracledb.Cursor):
        return CursorHandle(value, out_format)
    if isinstance(value, list):
        return [wrap_cursors(item, out_format) for item in value]
    return value


def dumpsql(func):
    """Decorator for logging statements, bind names and timing."""
    @wraps(func)
    def wrapper(self, sql: str, binds: dict[str, BindContract], *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nbinds: {list(binds)}')
        try:
            return func(self, sql, binds, *args, **kwargs)
        except Exception:
            logger.error(f'Error with statement:\nSQL:\n{sql}\nbinds: {list(binds)}')
            raise
        finally:
            elapsed = time.time() - start
            if self.connwrapper is not None:
                self.connwrapper.addcall(elapsed)
            logger.debug(f'Statement time: {elapsed:.4f}s')
    return wrapper


class OracleExecutor:
    """Executes compiled statements on an oracledb connection.

    Statement cursors that produced cursor OUT binds stay open until close(),
    so returned cursors are never orphaned before they are drained.
    """

    def __init__(self, connection: Any, connwrapper: Any = None) -> None:
        self.connection = connection
        self.connwrapper = connwrapper
        self._open_cursors: list[Any] = []

    @dumpsql
    def execute(self, sql: str, binds: dict[str, BindContract],
                options: ExecuteOptions | None = None) -> RawResult:
        """Execute one statement and collect its raw result."""
        options = options or ExecuteOptions()
        cursor = self.connection.cursor()
        keep_open = any(b.wire_type is WireType.CURSOR for b in binds.values())
        try:
            params, out_vars = bind_parameters(cursor, binds)
            cursor.execute(sql, params)
            result = self._collect(cursor, out_vars, options)
            if options.auto_commit:
                self.connection.commit()
            return result
        except oracledb.Error as err:
            keep_open = False
            if not options.auto_commit:
                self._rollback()
            raise query_error_for(err) from err
        finally:
            if keep_open:
                self._open_cursors.append(cursor)
            else:
                cursor.close()

    def _collect(self, cursor: Any, out_vars: dict[str, Any], options: ExecuteOptions) -> RawResult:
        result = RawResult(last_row_id=cursor.lastrowid)

        if cursor.description is not None:
            result.columns = columns_from_cursor_description(cursor)
            if options.out_format == OUT_FORMAT_OBJECT:
                cursor.rowfactory = DictRowFactory(cursor.description)
            if options.max_rows:
                rows = cursor.fetchmany(options.max_rows)
            else:
                rows = cursor.fetchall()
            result.rows = list(rows)
            logger.debug(f'Statement returned {len(result.rows)} rows')
        else:
            result.rows_affected = cursor.rowcount
            logger.debug(f'Statement affected {result.rows_affected} rows')

        if out_vars:
            result.out_binds = {name: wrap_cursors(var.getvalue(), options.out_format)
                                for name, var in out_vars.items()}
        return result

    def _rollback(self) -> None:
        try:
            self.connection.rollback()
        except oracledb.Error as e:
            logger.error(f'Rollback failed: {e}')

    def close(self) -> None:
        """Close statement cursors kept open for returned cursors."""
        while self._open_cursors:
            cursor = self._open_cursors.pop()
            try:
                cursor.close()
            except oracledb.Error as e:
                logger.debug(f'Error closing statement cursor: {e}')
