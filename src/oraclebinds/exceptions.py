"""
Exception classes for bind compilation, execution and result normalization.
"""
import oracledb


class DatabaseError(Exception):
    """Base class for all oraclebinds errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class QueryError(DatabaseError):
    """Error in query syntax or execution.
    """


class IntegrityViolation(QueryError):
    """Statement rejected by a constraint (ORA-00001, ORA-02291, ...).
    """


class CursorFetchError(QueryError):
    """Error draining or releasing a cursor returned through an OUT bind.
    """


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class TypeConversionError(ValidationError):
    """Error converting a parameter value to its bind type.
    """


DbConnectionError = (
    oracledb.OperationalError,
    oracledb.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    oracledb.IntegrityError,
    IntegrityViolation,
    )

ProgrammingError = (
    oracledb.ProgrammingError,
    oracledb.DatabaseError,
    QueryError,
    )


def query_error_for(err: oracledb.Error) -> QueryError:
    """Translate a driver error into the matching QueryError, keeping its message.
    """
    if isinstance(err, oracledb.IntegrityError):
        return IntegrityViolation(str(err))
    return QueryError(str(err))
