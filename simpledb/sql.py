import logging

from sqlalchemy.exc import SQLAlchemyError

from . import paramstyle, values
from .errors import ExecutionError, MappingError
from .mapping import row_mapper

log = logging.getLogger(__name__)

# Failures raised while executing or decoding a statement. Anything else
# (MappingError, programming errors) propagates unwrapped.
_STATEMENT_ERRORS = (SQLAlchemyError, TypeError, ValueError, ArithmeticError)


class Sql:
    """Accumulates one SQL statement and its positional parameters.

    Fragments are joined with single spaces; parameters bind to ``?``
    placeholders in order. Exactly one terminal method (``insert``,
    ``update``, ``delete`` or a ``select_*``) runs the statement, after which
    the buffer is empty again whether or not execution succeeded.
    """

    def __init__(self, connection, dev_mode=False, context=None):
        self._connection = connection
        self._dev_mode = dev_mode
        # Thread context that owns the connection; None means the caller
        # manages transactions on the connection itself.
        self._context = context
        self._fragments = []
        self._params = []

    @property
    def connection(self):
        return self._connection

    @property
    def sql(self):
        return " ".join(self._fragments)

    @property
    def params(self):
        return tuple(self._params)

    @property
    def autocommit(self):
        return self._context is not None and self._context.autocommit

    def append(self, fragment, *params):
        self._fragments.append(fragment)
        self._params.extend(params)
        return self

    def append_in(self, fragment, *params):
        n = paramstyle.count_placeholders(fragment)
        if n != 1:
            raise ExecutionError(
                f"append_in() needs exactly one '?' placeholder, got {n}",
                sql=fragment,
                params=params,
            )
        return self.append(paramstyle.expand_placeholder(fragment, len(params)), *params)

    def clear(self):
        self._fragments.clear()
        self._params.clear()

    def _log_statement(self, sql, params):
        if self._dev_mode:
            log.info("SQL: %s / Params: %s", sql, list(params))

    def _run_statement(self, action):
        sql = self.sql
        params = self.params
        conn = self._connection
        try:
            self._log_statement(sql, params)
            driver_sql, driver_params = paramstyle.convert_params(
                sql, params, conn.dialect.paramstyle
            )
            result = conn.exec_driver_sql(driver_sql, driver_params)
            value = action(result)
            if self.autocommit:
                conn.commit()
            return value
        except _STATEMENT_ERRORS as exc:
            error = ExecutionError(f"SQL execution failed: {exc}", sql=sql, params=params)
            if self.autocommit:
                self._rollback_after_failure(error)
            raise error from exc
        finally:
            self.clear()

    def _rollback_after_failure(self, error):
        try:
            self._connection.rollback()
        except SQLAlchemyError as exc:
            log.warning("Rollback after failed statement also failed: %s", exc)
            error.rollback_error = exc

    def insert(self):
        def action(result):
            key = result.lastrowid
            return int(key) if key else 0

        return self._run_statement(action)

    def update(self):
        return self._run_statement(lambda result: result.rowcount)

    def delete(self):
        return self._run_statement(lambda result: result.rowcount)

    def _mapper_for(self, shape):
        if shape is None:
            return None
        try:
            return row_mapper(shape)
        except MappingError:
            self.clear()
            raise

    def select_rows(self, shape=None):
        mapper = self._mapper_for(shape)
        rows = self._run_statement(_decode_rows)
        if mapper is None:
            return rows
        return [mapper.map(row) for row in rows]

    def select_row(self, shape=None):
        mapper = self._mapper_for(shape)

        def action(result):
            keys = list(result.keys())
            row = result.first()
            return None if row is None else dict(zip(keys, row))

        row = self._run_statement(action)
        if row is None or mapper is None:
            return row
        return mapper.map(row)

    def select_longs(self):
        return self._run_statement(
            lambda result: [values.to_long(row[0]) for row in result]
        )

    def _select_scalar(self, coerce):
        return self._run_statement(lambda result: coerce(_first_value(result)))

    def select_long(self):
        return self._select_scalar(values.to_long)

    def select_string(self):
        return self._select_scalar(values.to_string)

    def select_boolean(self):
        return self._select_scalar(values.to_boolean)

    def select_datetime(self):
        return self._select_scalar(values.to_datetime)

    def __repr__(self):
        return f"Sql({self.sql!r}, params={list(self._params)!r})"


def _decode_rows(result):
    keys = list(result.keys())
    return [dict(zip(keys, row)) for row in result]


def _first_value(result):
    row = result.first()
    return None if row is None else row[0]
