"""
Oracle connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for acquiring a dedicated database connection
2. The `ConnectionWrapper` class, which implements the executor contract
   (`execute(sql, binds, options)` and `close()`) on top of the connection
3. Engine creation and management through a thread-safe registry

Connections are never pooled: every engine uses NullPool, so closing a
wrapper closes the underlying oracledb session.
"""
import atexit
import logging
import threading
from collections.abc import Callable
from dataclasses import fields
from typing import Any, Self

import oracledb
import sqlalchemy as sa
from oraclebinds.exceptions import ConnectionFailure
from oraclebinds.executor import OracleExecutor
from oraclebinds.options import DatabaseOptions
from oraclebinds.types import BindContract, ExecuteOptions, RawResult
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'ConnectionWrapper',
    'connect',
    'configure_connection',
    'create_url_from_options',
    'connect_args_from_options',
    'get_engine_for_options',
    'get_raw_connection',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[tuple, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions,
                            url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """Build the SQLAlchemy URL. Credentials travel in connect_args.
    """
    return url_creator(drivername='oracle+oracledb')


def connect_args_from_options(options: DatabaseOptions) -> dict[str, Any]:
    """Convert the credential bundle to oracledb connect arguments.
    """
    connect_args: dict[str, Any] = {
        'user': options.user,
        'password': options.password,
        'dsn': options.connection_string,
    }
    if options.timeout:
        connect_args['tcp_connect_timeout'] = options.timeout
    return connect_args


def _engine_key(options: DatabaseOptions) -> tuple:
    return (options.user, options.connection_string, options.thin_mode, options.timeout)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    The thin/thick choice is process wide in python-oracledb: once an engine
    enables thick mode, every later connection uses the thick client.
    """
    key = _engine_key(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.connection_string}')
            return _engine_registry[key]

        url = create_url_from_options(options)

        engine_kwargs: dict[str, Any] = {
            'echo': False,
            'poolclass': NullPool,
            'connect_args': connect_args_from_options(options),
        }
        if not options.thin_mode:
            engine_kwargs['thick_mode'] = True

        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.connection_string} '
                     f'({"thin" if options.thin_mode else "thick"} mode)')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for key, engine in list(_engine_registry.items()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def get_raw_connection(connection: Any) -> Any:
    """Extract the raw oracledb connection from a pool proxy.
    """
    raw_conn = connection
    if hasattr(connection, 'driver_connection'):
        raw_conn = connection.driver_connection
    return raw_conn


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection and executes compiled statements on it

    This class provides a thin wrapper around SQLAlchemy connection objects that:
    1. Tracks statement counts and timing
    2. Executes compiled statements through OracleExecutor
    3. Supports context manager protocol for explicit resource management
    """

    def __init__(self, sa_connection: sa.engine.Connection | None = None,
                 options: DatabaseOptions | None = None) -> None:
        """Initialize a connection wrapper
        """
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine if sa_connection else None
        self.options = options
        self.dbapi_connection = sa_connection.connection if sa_connection else None
        self.executor = OracleExecutor(get_raw_connection(self.dbapi_connection), self) \
            if sa_connection else None
        self.calls = 0
        self.time = 0

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the connection when exiting the context manager
        """
        try:
            self.close()
            logger.debug('Closed connection via context manager')
        except Exception as e:
            logger.error(f'Error closing connection in __exit__: {e}')

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    @property
    def closed(self) -> bool:
        return self.sa_connection is None or bool(getattr(self.sa_connection, 'closed', False))

    def execute(self, sql: str, binds: dict[str, BindContract],
                options: ExecuteOptions | None = None) -> RawResult:
        """Execute a compiled statement and return its raw result.
        """
        if self.closed:
            raise ConnectionFailure('Connection is closed')
        return self.executor.execute(sql, binds, options)

    def close(self) -> None:
        """Close open statement cursors and the SQLAlchemy connection
        """
        if self.closed:
            return
        if self.executor is not None:
            self.executor.close()
        self.sa_connection.close()
        logger.debug(f'Connection closed: {self.calls} statements in {self.time:.2f}s')


def configure_connection(sa_connection: sa.engine.Connection, options: DatabaseOptions) -> None:
    """Tag the oracledb session with the application name for tracing.
    """
    raw_conn = get_raw_connection(sa_connection.connection)
    raw_conn.module = options.appname


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Acquire a dedicated Oracle connection

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        ConnectionWrapper for executing compiled statements

    Raises
        ConnectionFailure: if the connection cannot be established
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    try:
        engine = get_engine_for_options(options)
        sa_connection = engine.connect()
    except (SQLAlchemyError, oracledb.Error) as err:
        raise ConnectionFailure(str(err)) from err

    try:
        configure_connection(sa_connection, options)
    except Exception as err:
        sa_connection.close()
        raise ConnectionFailure(f'Failed to configure connection: {err}') from err

    return ConnectionWrapper(sa_connection, options)
