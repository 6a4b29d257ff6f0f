"""
Parameterized SQL execution for Oracle with typed binds, IN-list expansion
and normalized results.

Statements can be run either as:
- Module function: oraclebinds.execute(options, sql, params)
- Step by step on an acquired connection:
  compile_binds(sql, params) → cn.execute(sql, binds) → normalize_out_binds()

The module function acquires and always releases its own connection.
"""
__version__ = '0.1.0'

from typing import Any

from oraclebinds.binds import compile_binds
from oraclebinds.connection import ConnectionWrapper, connect
from oraclebinds.exceptions import ConnectionFailure, CursorFetchError
from oraclebinds.exceptions import DatabaseError, DbConnectionError
from oraclebinds.exceptions import IntegrityError, IntegrityViolation
from oraclebinds.exceptions import ProgrammingError, QueryError
from oraclebinds.exceptions import TypeConversionError, ValidationError
from oraclebinds.normalize import normalize_out_binds
from oraclebinds.options import DEFAULT_CURSOR_FETCH_SIZE, DEFAULT_MAX_SIZE
from oraclebinds.options import DatabaseOptions
from oraclebinds.statement import execute_statement
from oraclebinds.types import BindContract, CompiledStatement, CursorHandle
from oraclebinds.types import DataType, Direction, ParameterDescriptor
from oraclebinds.types import StatementResult, WireType


def execute(options: DatabaseOptions | dict[str, Any] | str, sql: str,
            params: Any = None, **kw: Any) -> StatementResult:
    """Execute a parameterized statement and return its normalized record.
    """
    return execute_statement(options, sql, params, **kw)


__all__ = [
    'connect',
    'ConnectionWrapper',
    'DatabaseOptions',
    'execute',
    'execute_statement',
    'compile_binds',
    'normalize_out_binds',
    'ParameterDescriptor',
    'BindContract',
    'CompiledStatement',
    'CursorHandle',
    'StatementResult',
    'DataType',
    'Direction',
    'WireType',
    'DEFAULT_MAX_SIZE',
    'DEFAULT_CURSOR_FETCH_SIZE',
    'DatabaseError',
    'ValidationError',
    'TypeConversionError',
    'ConnectionFailure',
    'QueryError',
    'CursorFetchError',
    'IntegrityViolation',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
]
