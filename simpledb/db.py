from __future__ import annotations

import logging
import os
import threading
import weakref
from contextlib import contextmanager
from typing import Iterator, Mapping

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from .errors import CloseError, DbConnectionError, Error, StateError, TransactionError
from .sql import Sql

log = logging.getLogger(__name__)

DEFAULT_DRIVER = "mysql+pymysql"
DEFAULT_TIMEZONE = "+09:00"

ENV_PREFIX = "SIMPLEDB_"

_FALSE_STRINGS = {"0", "false", "no", "off"}


class _ThreadSlot:
    """Anchor object that lives exactly as long as one thread's slot."""


def _close_abandoned(conn: Connection, thread_name: str) -> None:
    try:
        conn.close()
    except SQLAlchemyError as exc:
        log.warning("Closing connection left open by thread %s failed: %s", thread_name, exc)
        return
    log.debug("Closed connection left open by thread %s", thread_name)


class _ConnectionContext(threading.local):
    """Per-thread slot holding at most one live connection.

    A connection still attached when its thread ends (or when the manager
    is garbage collected) is closed by a finalizer on the slot.
    """

    def __init__(self):
        self.connection: Connection | None = None
        self.autocommit = True
        self._slot = _ThreadSlot()
        self._finalizer: weakref.finalize | None = None

    def attach(self, conn: Connection) -> None:
        self.connection = conn
        self.autocommit = True
        self._finalizer = weakref.finalize(
            self._slot, _close_abandoned, conn, threading.current_thread().name
        )

    def detach(self) -> Connection | None:
        conn = self.connection
        self.connection = None
        self.autocommit = True
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        return conn


def _split_host(host: str | None) -> tuple[str | None, int | None]:
    if host and ":" in host:
        name, _, port = host.rpartition(":")
        if port.isdigit():
            return name, int(port)
    return host or None, None


class SimpleDb:
    """Hands out :class:`~simpledb.sql.Sql` builders bound to a connection
    owned by the calling thread.

    The connection is opened lazily by :meth:`acquire_builder` and lives until
    :meth:`close`, :meth:`commit` or :meth:`rollback` (the last two always
    close it, whatever the outcome), or until the owning thread ends. There
    is no pool: every open is a real driver connection and every close really
    closes it.
    """

    def __init__(
        self,
        host: str | None,
        user: str | None,
        password: str | None,
        db_name: str | None,
        *,
        drivername: str = DEFAULT_DRIVER,
        timezone: str = DEFAULT_TIMEZONE,
        dev_mode: bool = False,
    ):
        hostname, port = _split_host(host)
        self.url = URL.create(
            drivername,
            username=user or None,
            password=password or None,
            host=hostname,
            port=port,
            database=db_name,
        )
        self.timezone = timezone
        self.dev_mode = dev_mode
        self._engine: Engine | None = None
        self._context = _ConnectionContext()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SimpleDb":
        env = os.environ if environ is None else environ

        def get(name, default=None):
            return env.get(ENV_PREFIX + name, default)

        dev_mode = get("DEV_MODE", "0").strip().lower() not in _FALSE_STRINGS
        return cls(
            get("HOST"),
            get("USER"),
            get("PASSWORD"),
            get("NAME"),
            drivername=get("DRIVER", DEFAULT_DRIVER),
            timezone=get("TIMEZONE", DEFAULT_TIMEZONE),
            dev_mode=dev_mode,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            connect_args = {}
            if self.url.get_backend_name() in ("mysql", "mariadb"):
                connect_args["init_command"] = f"SET time_zone = '{self.timezone}'"
            self._engine = create_engine(self.url, poolclass=NullPool, connect_args=connect_args)
        return self._engine

    @property
    def has_connection(self) -> bool:
        conn = self._context.connection
        return conn is not None and not conn.closed and not conn.invalidated

    def _ensure_connection(self) -> Connection:
        ctx = self._context
        conn = ctx.connection
        if conn is not None and not conn.closed and not conn.invalidated:
            return conn

        if conn is not None:
            # Stale handle: detach it before opening a replacement.
            ctx.detach()
            try:
                conn.close()
            except SQLAlchemyError as exc:
                log.warning("Closing stale connection failed: %s", exc)

        try:
            conn = self.engine.connect()
        except (SQLAlchemyError, ImportError) as exc:
            raise DbConnectionError(
                f"Cannot connect to {self.url.render_as_string(hide_password=True)}: {exc}"
            ) from exc

        ctx.attach(conn)
        log.debug("Opened connection for thread %s", threading.current_thread().name)
        return conn

    def acquire_builder(self) -> Sql:
        conn = self._ensure_connection()
        return Sql(conn, dev_mode=self.dev_mode, context=self._context)

    def begin_transaction(self) -> None:
        ctx = self._context
        conn = ctx.connection
        if conn is None or conn.closed:
            raise TransactionError("begin_transaction() needs an open connection")
        if not ctx.autocommit:
            return
        try:
            conn.begin()
        except SQLAlchemyError as exc:
            raise TransactionError(f"begin_transaction() failed: {exc}") from exc
        ctx.autocommit = False
        log.debug("Transaction started")

    def commit(self) -> None:
        self._finish_transaction("commit")

    def rollback(self) -> None:
        self._finish_transaction("rollback")

    def _finish_transaction(self, action: str) -> None:
        conn = self._context.connection
        if conn is None:
            raise TransactionError(f"{action}() called with no open connection")
        try:
            if action == "commit":
                conn.commit()
            else:
                conn.rollback()
        except SQLAlchemyError as exc:
            error = TransactionError(f"{action}() failed: {exc}")
            error.close_error = self._close_after_failure()
            raise error from exc
        log.debug("Transaction %s", "committed" if action == "commit" else "rolled back")
        self.close()

    def _close_after_failure(self) -> CloseError | None:
        try:
            self.close()
        except CloseError as exc:
            log.warning("Closing connection after failure also failed: %s", exc)
            return exc
        return None

    def close(self) -> None:
        conn = self._context.connection
        if conn is None:
            raise StateError("close() called with no open connection")
        self._context.detach()
        try:
            conn.close()
        except SQLAlchemyError as exc:
            raise CloseError(f"close() failed: {exc}") from exc
        log.debug("Closed connection for thread %s", threading.current_thread().name)

    def run_direct(self, sql: str, *params) -> int:
        """Run one non-transactional statement on a fresh context and close it.

        Must not be used while a transaction is open on this thread: the
        context is closed afterwards and the transaction goes with it.
        """
        builder = self.acquire_builder()
        try:
            count = builder.append(sql, *params).update()
        except Error:
            self._close_after_failure()
            raise
        self.close()
        return count

    @contextmanager
    def transaction(self) -> Iterator["SimpleDb"]:
        self._ensure_connection()
        try:
            self.begin_transaction()
        except TransactionError:
            self._close_after_failure()
            raise

        try:
            yield self
        except BaseException as exc:
            try:
                self.rollback()
            except Error as rb_exc:
                log.warning("Rollback after %r failed: %s", exc, rb_exc)
            raise
        self.commit()

    def dispose(self) -> None:
        if self._context.connection is not None:
            self.close()
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def __repr__(self):
        return f"SimpleDb({self.url.render_as_string(hide_password=True)!r}, dev_mode={self.dev_mode})"
