"""Tests for statement orchestration with a fake connection.
"""
import re
from unittest.mock import MagicMock

import oracledb
import pandas as pd
import pytest
from oraclebinds import execute
from oraclebinds.connection import ConnectionWrapper
from oraclebinds.exceptions import ConnectionFailure, CursorFetchError
from oraclebinds.exceptions import IntegrityError, IntegrityViolation
from oraclebinds.exceptions import QueryError, ValidationError
from oraclebinds.options import DatabaseOptions, pandas_data_loader
from oraclebinds.statement import assemble_result, execute_statement
from oraclebinds.statement import release_connection
from oraclebinds.types import OUT_FORMAT_ARRAY, Column, CursorHandle
from oraclebinds.types import Direction, RawResult, WireType


def run(options, cn, sql, params=None):
    return execute_statement(options, sql, params, connector=lambda o: cn)


class TestExecuteStatement:
    """End to end runs through compile, execute and normalize."""

    def test_cursor_out_bind(self, options, make_fake_connection, make_driver_cursor):
        ref = make_driver_cursor([(1, 'a'), (2, 'b')], columns=['ID', 'NAME'])
        cn = make_fake_connection(rows_affected=0, out_binds={'result': CursorHandle(ref)})

        result = run(options, cn, 'BEGIN open_rc(:result); END;',
                     [{'name': 'result', 'datatype': 'cursor', 'direction': 'out'}])

        assert result.out_binds == {'result': [{'ID': 1, 'NAME': 'a'}, {'ID': 2, 'NAME': 'b'}]}
        assert ref.close_calls == 1
        assert cn.close_calls == 1

        sql, binds, exec_options = cn.executed[0]
        assert sql == 'BEGIN open_rc(:result); END;'
        assert binds['result'].direction is Direction.OUT
        assert binds['result'].wire_type is WireType.CURSOR
        assert exec_options.auto_commit is True

    def test_in_list_reaches_executor(self, options, make_fake_connection):
        cn = make_fake_connection(columns=[Column('ID')], rows=[{'ID': 1}, {'ID': 3}])

        result = run(options, cn, 'SELECT id FROM t WHERE id IN (:ids)', [{
            'name': 'ids', 'datatype': 'number', 'direction': 'in',
            'expandForInList': True, 'value': '1, 2, 3',
        }])

        sql, binds, _ = cn.executed[0]
        assert re.fullmatch(r'SELECT id FROM t WHERE id IN \(:\w+,:\w+,:\w+\)', sql)
        assert sorted(b.value for b in binds.values()) == [1, 2, 3]
        assert result.rows == [{'ID': 1}, {'ID': 3}]
        assert result.meta_data == [Column('ID').to_dict()]
        assert result.rows_affected is None

    def test_dml_result(self, options, make_fake_connection):
        cn = make_fake_connection(rows_affected=4, last_row_id='AAAR3sAAEAAAACXAAA')

        result = run(options, cn, "UPDATE t SET status = 'X' WHERE id = :id",
                     [{'name': 'id', 'datatype': 'number', 'value': '9'}])

        assert result.rows_affected == 4
        assert result.last_row_id == 'AAAR3sAAEAAAACXAAA'
        assert result.rows is None
        assert result.meta_data is None
        assert result.out_binds is None

    def test_execute_options_from_database_options(self, make_fake_connection):
        options = DatabaseOptions(user='u', password='p', connection_string='db',
                                  auto_commit=False, out_format=OUT_FORMAT_ARRAY, max_rows=5)
        cn = make_fake_connection()

        run(options, cn, 'SELECT 1 FROM dual')

        exec_options = cn.executed[0][2]
        assert exec_options.auto_commit is False
        assert exec_options.out_format == OUT_FORMAT_ARRAY
        assert exec_options.max_rows == 5

    def test_cursor_fetch_size_from_options(self, make_fake_connection, make_driver_cursor):
        options = DatabaseOptions(user='u', password='p', connection_string='db', cursor_fetch_size=2)
        ref = make_driver_cursor([(1,), (2,), (3,)])
        cn = make_fake_connection(out_binds={'rc': CursorHandle(ref)})

        result = run(options, cn, 'BEGIN p(:rc); END;',
                     [{'name': 'rc', 'datatype': 'cursor', 'direction': 'out'}])

        assert len(result.out_binds['rc']) == 2
        assert ref.fetch_sizes == [2]

    def test_default_max_size_from_options(self, make_fake_connection):
        options = DatabaseOptions(user='u', password='p', connection_string='db', default_max_size=64)
        cn = make_fake_connection()

        run(options, cn, 'BEGIN :o := f(); END;', [{'name': 'o', 'direction': 'out'}])

        assert cn.executed[0][1]['o'].max_size == 64

    def test_pandas_loader(self, make_fake_connection):
        options = DatabaseOptions(user='u', password='p', connection_string='db',
                                  data_loader=pandas_data_loader)
        cn = make_fake_connection(columns=[Column('ID')], rows=[{'ID': 1}])

        result = run(options, cn, 'SELECT 1 AS id FROM dual')

        assert isinstance(result.rows, pd.DataFrame)
        assert result.rows['ID'].tolist() == [1]


class TestFailures:
    """Errors abort the invocation and the connection is always released."""

    def test_validation_error_closes_connection(self, options, make_fake_connection):
        cn = make_fake_connection()
        with pytest.raises(ValidationError):
            run(options, cn, 'SELECT * FROM t WHERE id IN (:ids)',
                [{'name': 'ids', 'expandForInList': True, 'value': ' , '}])
        assert cn.executed == []
        assert cn.close_calls == 1

    def test_query_error_closes_connection(self, options, make_fake_connection):
        cn = make_fake_connection(execute_error=QueryError('ORA-00942: table or view does not exist'))
        with pytest.raises(QueryError, match='ORA-00942'):
            run(options, cn, 'SELECT * FROM missing')
        assert cn.close_calls == 1

    def test_driver_error_becomes_query_error(self, options, make_fake_connection):
        cn = make_fake_connection(execute_error=oracledb.DatabaseError('ORA-00904: invalid identifier'))
        with pytest.raises(QueryError, match='ORA-00904'):
            run(options, cn, 'SELECT bogus FROM dual')
        assert cn.close_calls == 1

    def test_cursor_failure_releases_everything(self, options, make_fake_connection, make_driver_cursor):
        bad = make_driver_cursor([(1,)], fail_fetch=True)
        other = make_driver_cursor([(2,)])
        cn = make_fake_connection(out_binds={'bad': CursorHandle(bad), 'other': CursorHandle(other)})

        with pytest.raises(CursorFetchError):
            run(options, cn, 'BEGIN p(:bad, :other); END;', [
                {'name': 'bad', 'datatype': 'cursor', 'direction': 'out'},
                {'name': 'other', 'datatype': 'cursor', 'direction': 'out'},
            ])

        assert bad.close_calls == 1
        assert other.close_calls == 1
        assert cn.close_calls == 1

    def test_close_failure_does_not_change_success(self, options, make_fake_connection, caplog):
        cn = make_fake_connection(rows_affected=1, close_error=oracledb.InterfaceError('DPY-1001'))

        result = run(options, cn, 'DELETE FROM t')

        assert result.rows_affected == 1
        assert 'Failed to close the database connection' in caplog.text

    def test_close_failure_does_not_replace_error(self, options, make_fake_connection):
        cn = make_fake_connection(execute_error=QueryError('ORA-01722: invalid number'),
                                  close_error=oracledb.InterfaceError('DPY-1001'))
        with pytest.raises(QueryError, match='ORA-01722'):
            run(options, cn, 'SELECT 1 FROM dual')

    def test_connection_failure_propagates(self, options):
        def refuse(opts):
            raise ConnectionFailure('ORA-12541: TNS:no listener')

        with pytest.raises(ConnectionFailure):
            execute_statement(options, 'SELECT 1 FROM dual', connector=refuse)


def test_release_connection_logs(make_fake_connection, caplog):
    cn = make_fake_connection(close_error=RuntimeError('boom'))
    release_connection(cn)
    assert cn.close_calls == 1
    assert 'boom' in caplog.text


def test_assemble_result_without_result_set(options):
    raw = RawResult(rows_affected=0)
    result = assemble_result(raw, {'o': 1}, options)
    assert result.as_item() == {
        'metaData': None,
        'rows': None,
        'rowsAffected': 0,
        'lastRowId': None,
        'outBinds': {'o': 1},
    }


def test_assemble_result_empty_result_set(options):
    raw = RawResult(columns=[Column('ID')], rows=[])
    result = assemble_result(raw, None, options)
    assert result.rows == []
    assert result.meta_data[0]['name'] == 'ID'


def test_package_execute(options, make_fake_connection):
    cn = make_fake_connection(rows_affected=2)
    result = execute(options, 'DELETE FROM t', connector=lambda o: cn)
    assert result.rows_affected == 2
    assert cn.close_calls == 1


def test_options_from_dict(make_fake_connection):
    cn = make_fake_connection(rows_affected=0)
    seen = []

    def connector(opts):
        seen.append(opts)
        return cn

    execute_statement({'user': 'u', 'password': 'p', 'connection_string': 'db', 'max_rows': 3},
                      'SELECT 1 FROM dual', connector=connector)

    assert isinstance(seen[0], DatabaseOptions)
    assert seen[0].max_rows == 3


def test_acquired_connection_left_open(options, mocker):
    sa_connection = MagicMock()
    sa_connection.closed = False
    wrapper = ConnectionWrapper(sa_connection, options)
    execute_ = mocker.patch.object(wrapper, 'execute', return_value=RawResult(rows_affected=1))
    close = mocker.patch.object(wrapper, 'close')

    result = execute_statement(wrapper, 'DELETE FROM t WHERE id = :id',
                               [{'name': 'id', 'datatype': 'number', 'value': '1'}])

    assert result.rows_affected == 1
    assert execute_.call_args.args[1]['id'].value == 1
    close.assert_not_called()


def test_integrity_violation_keeps_driver_class(options, make_fake_connection):
    cn = make_fake_connection(execute_error=oracledb.IntegrityError('ORA-00001: unique constraint (T_PK) violated'))

    with pytest.raises(IntegrityError, match='ORA-00001') as excinfo:
        run(options, cn, 'INSERT INTO t (id) VALUES (:id)', [{'name': 'id', 'datatype': 'number', 'value': '1'}])

    assert isinstance(excinfo.value, IntegrityViolation)
    assert isinstance(excinfo.value, QueryError)
    assert cn.close_calls == 1


def test_engine_failure_is_connection_failure(options, mocker):
    mocker.patch('oraclebinds.connection.get_engine_for_options',
                 side_effect=oracledb.DatabaseError('DPI-1047: Cannot locate a 64-bit Oracle Client library'))

    with pytest.raises(ConnectionFailure, match='DPI-1047'):
        execute_statement(options, 'SELECT 1 FROM dual')


def test_manual_commit_on_owned_connection_warns(make_fake_connection, caplog):
    options = DatabaseOptions(user='u', password='p', connection_string='db', auto_commit=False)
    cn = make_fake_connection(rows_affected=1)

    run(options, cn, 'DELETE FROM t')

    assert 'rolled back when it closes' in caplog.text


def test_auto_commit_on_owned_connection_does_not_warn(options, make_fake_connection, caplog):
    run(options, make_fake_connection(rows_affected=1), 'DELETE FROM t')
    assert 'rolled back' not in caplog.text
