import gc
import logging
import threading

import pytest
from sqlalchemy.engine import Connection
from sqlalchemy.exc import OperationalError

import simpledb.db
from simpledb import (
    CloseError, DbConnectionError, ExecutionError, SimpleDb, StateError, TransactionError,
)


def _count(db):
    count = db.acquire_builder().append("SELECT COUNT(*) FROM article").select_long()
    db.close()
    return count


def _boom(*args, **kwargs):
    raise OperationalError("boom", {}, Exception("boom"))


def test_connection_opened_lazily(db):
    assert not db.has_connection

    db.acquire_builder()

    assert db.has_connection


def test_builders_share_thread_connection(db):
    first = db.acquire_builder()
    second = db.acquire_builder()

    assert first.connection is second.connection


def test_closed_connection_is_replaced(db):
    first = db.acquire_builder()
    db.close()

    assert not db.has_connection
    assert first.connection.closed

    second = db.acquire_builder()
    assert second.connection is not first.connection
    assert not second.connection.closed


def test_invalidated_connection_is_replaced(db):
    first = db.acquire_builder()
    first.connection.invalidate()

    second = db.acquire_builder()

    assert second.connection is not first.connection
    assert second.append("SELECT COUNT(*) FROM article").select_long() == 6


def test_close_without_connection_raises_state_error(db):
    with pytest.raises(StateError):
        db.close()


def test_close_failure_raises_close_error_and_detaches(db, monkeypatch):
    db.acquire_builder()
    monkeypatch.setattr(Connection, "close", _boom)

    with pytest.raises(CloseError):
        db.close()

    assert not db.has_connection


def test_connect_failure_raises_connection_error(tmp_path):
    bad = SimpleDb(None, None, None, str(tmp_path / "missing" / "dir" / "x.db"), drivername="sqlite")

    with pytest.raises(DbConnectionError) as excinfo:
        bad.acquire_builder()

    assert excinfo.value.__cause__ is not None
    assert not bad.has_connection


def test_begin_transaction_without_connection_fails(db):
    with pytest.raises(TransactionError):
        db.begin_transaction()


@pytest.mark.parametrize("action", ["commit", "rollback"])
def test_commit_and_rollback_without_connection_fail(db, action):
    with pytest.raises(TransactionError):
        getattr(db, action)()


def test_commit_persists_and_closes(db):
    db.acquire_builder()
    db.begin_transaction()
    db.acquire_builder().append(
        "INSERT INTO article (created_date, modified_date, title, body) "
        "VALUES (CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?)", "t", "b"
    ).insert()

    db.commit()

    assert not db.has_connection
    assert _count(db) == 7


def test_rollback_after_failed_update_discards_changes(db):
    db.acquire_builder()
    db.begin_transaction()
    new_id = db.acquire_builder().append(
        "INSERT INTO article (created_date, modified_date, title, body) "
        "VALUES (CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?)", "t", "b"
    ).insert()

    with pytest.raises(ExecutionError):
        db.acquire_builder().append("UPDATE article SET no_such_column = ? WHERE id = ?", 1, new_id).update()

    db.rollback()

    assert not db.has_connection
    row = db.acquire_builder().append("SELECT * FROM article WHERE id = ?", new_id).select_row()
    assert row is None


def test_begin_transaction_twice_is_harmless(db):
    db.acquire_builder()
    db.begin_transaction()
    db.begin_transaction()
    db.rollback()

    assert not db.has_connection


def test_commit_failure_still_closes(db, monkeypatch):
    db.acquire_builder()
    db.begin_transaction()
    monkeypatch.setattr(Connection, "commit", _boom)

    with pytest.raises(TransactionError) as excinfo:
        db.commit()

    assert excinfo.value.close_error is None
    assert isinstance(excinfo.value.__cause__, OperationalError)
    assert not db.has_connection


def test_rollback_failure_still_closes(db, monkeypatch):
    db.acquire_builder()
    db.begin_transaction()
    monkeypatch.setattr(Connection, "rollback", _boom)

    with pytest.raises(TransactionError):
        db.rollback()

    assert not db.has_connection


def test_commit_and_close_failures_are_both_reported(db, monkeypatch):
    db.acquire_builder()
    db.begin_transaction()
    monkeypatch.setattr(Connection, "commit", _boom)
    monkeypatch.setattr(Connection, "close", _boom)

    with pytest.raises(TransactionError) as excinfo:
        db.commit()

    assert isinstance(excinfo.value.close_error, CloseError)
    assert not db.has_connection


def test_close_failure_after_successful_commit_raises_close_error(db, monkeypatch):
    db.acquire_builder()
    db.begin_transaction()
    db.acquire_builder().append("UPDATE article SET title = ? WHERE id = ?", "kept", 1).update()
    monkeypatch.setattr(Connection, "close", _boom)

    with pytest.raises(CloseError):
        db.commit()

    monkeypatch.undo()
    assert db.acquire_builder().append("SELECT title FROM article WHERE id = 1").select_string() == "kept"


def test_run_direct_returns_count_and_closes(db):
    affected = db.run_direct("UPDATE article SET body = ? WHERE is_blind = ?", "hidden", True)

    assert affected == 3
    assert not db.has_connection


def test_run_direct_closes_on_failure(db):
    with pytest.raises(ExecutionError):
        db.run_direct("UPDATE nowhere SET x = ?", 1)

    assert not db.has_connection


def test_transaction_context_commits(db):
    with db.transaction():
        db.acquire_builder().append("DELETE FROM article WHERE id = ?", 1).delete()
        assert db.has_connection

    assert not db.has_connection
    assert _count(db) == 5


def test_transaction_context_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with db.transaction():
            db.acquire_builder().append("DELETE FROM article").delete()
            raise RuntimeError("abort")

    assert not db.has_connection
    assert _count(db) == 6


def test_each_thread_gets_its_own_connection(db):
    main_conn = db.acquire_builder().connection
    seen = {}

    def worker():
        seen["had_connection"] = db.has_connection
        sql = db.acquire_builder()
        seen["conn"] = sql.connection
        seen["count"] = sql.append("SELECT COUNT(*) FROM article").select_long()
        db.close()

    t = threading.Thread(target=worker)
    t.start()
    t.join()

    assert seen["had_connection"] is False
    assert seen["conn"] is not main_conn
    assert seen["count"] == 6
    assert db.has_connection
    assert db.acquire_builder().connection is main_conn


def test_connection_left_open_is_closed_when_its_thread_ends(db):
    seen = {}

    def worker():
        sql = db.acquire_builder()
        seen["conn"] = sql.connection
        seen["count"] = sql.append("SELECT COUNT(*) FROM article").select_long()

    t = threading.Thread(target=worker)
    t.start()
    t.join()
    gc.collect()

    assert seen["count"] == 6
    assert seen["conn"].closed
    assert not db.has_connection


def test_close_disarms_thread_exit_finalizer(db):
    db.acquire_builder()
    finalizer = db._context._finalizer
    assert finalizer.alive

    db.close()

    assert not finalizer.alive
    assert db._context._finalizer is None


def test_managers_do_not_share_connections(db, db_path):
    other = SimpleDb(None, None, None, db_path, drivername="sqlite")
    try:
        assert other.acquire_builder().connection is not db.acquire_builder().connection
    finally:
        other.dispose()


def test_dev_mode_passed_to_builders(db, caplog):
    caplog.set_level(logging.INFO, logger="simpledb.sql")
    sql = db.acquire_builder()
    db.dev_mode = True
    logged = db.acquire_builder()

    sql.append("SELECT 1").select_long()
    assert "SQL:" not in caplog.text

    logged.append("SELECT 2").select_long()
    assert "SQL: SELECT 2" in caplog.text


def test_from_env():
    db = SimpleDb.from_env({
        "SIMPLEDB_HOST": "db.internal:3307",
        "SIMPLEDB_USER": "app",
        "SIMPLEDB_PASSWORD": "secret",
        "SIMPLEDB_NAME": "blog",
        "SIMPLEDB_DEV_MODE": "true",
    })

    assert db.url.drivername == "mysql+pymysql"
    assert db.url.host == "db.internal"
    assert db.url.port == 3307
    assert db.url.username == "app"
    assert db.url.password == "secret"
    assert db.url.database == "blog"
    assert db.timezone == "+09:00"
    assert db.dev_mode is True
    assert "secret" not in repr(db)


@pytest.mark.parametrize("value", ["0", "false", "NO", "off"])
def test_from_env_dev_mode_off(value):
    db = SimpleDb.from_env({"SIMPLEDB_NAME": "blog", "SIMPLEDB_DEV_MODE": value})
    assert db.dev_mode is False


def test_mysql_engine_sets_session_timezone(monkeypatch):
    captured = {}

    def fake_create_engine(url, **kwargs):
        captured["url"] = url
        captured.update(kwargs)
        return object()

    monkeypatch.setattr(simpledb.db, "create_engine", fake_create_engine)
    db = SimpleDb("localhost", "root", "pw", "blog", timezone="Asia/Seoul")

    db.engine

    assert captured["connect_args"] == {"init_command": "SET time_zone = 'Asia/Seoul'"}
    assert captured["url"].database == "blog"


def test_sqlite_engine_has_no_timezone_command(monkeypatch, db_path):
    captured = {}

    def fake_create_engine(url, **kwargs):
        captured.update(kwargs)
        return object()

    monkeypatch.setattr(simpledb.db, "create_engine", fake_create_engine)
    SimpleDb(None, None, None, db_path, drivername="sqlite").engine

    assert captured["connect_args"] == {}
