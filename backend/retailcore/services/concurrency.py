# Overview: Service-layer operations for concurrency; retries, units of work and SQLite transaction mode.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import event
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..errors import ServiceError, TransactionError
from ..extensions import db


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts, "database is locked").
    The session is rolled back before every new attempt, so func must redo its
    whole unit of work.
    Defaults come from DB_RETRY_ATTEMPTS / DB_RETRY_BACKOFF.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Transient database failure (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def configure_sqlite_transactions(engine) -> None:
    """
    Take over transaction control from the pysqlite driver.

    The driver defers BEGIN until the first DML statement, which breaks
    SAVEPOINT semantics and lets two writers both hold SHARED locks and then
    deadlock on upgrade. Disabling its implicit handling and emitting
    BEGIN IMMEDIATE makes writers queue on the busy timeout instead.
    """
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def run_atomic(func, *, action: str):
    """
    Run func as one unit of work.

    Transient failures are retried as a whole. A ServiceError rolls back
    everything and propagates unchanged; any other database error rolls back
    and surfaces as TransactionError.
    """
    try:
        return run_with_retry(func)
    except ServiceError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise TransactionError(f"{action} failed", {"reason": exc.__class__.__name__}) from exc
