# Overview: Transaction boundaries and retry helpers shared by the point ledger services.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the write lock comes from BEGIN IMMEDIATE in unit_of_work().
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the database write lock up front on SQLite.

    A deferred SQLite transaction that reads first and writes later fails
    with "database is locked" when another writer got there in between.
    BEGIN IMMEDIATE makes concurrent writers wait on the busy timeout instead.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


_UNCOMMITTED_WRITES = "loyalty_uncommitted_writes"


@event.listens_for(Session, "after_flush")
def _mark_flushed_writes(session, flush_context):
    session.info[_UNCOMMITTED_WRITES] = True


@event.listens_for(Session, "after_transaction_end")
def _clear_flushed_writes(session, transaction):
    # Commit, rollback or close of the outermost transaction
    if transaction.parent is None:
        session.info.pop(_UNCOMMITTED_WRITES, None)


def has_pending_writes(session=None) -> bool:
    """True when the session holds writes its owner has not committed yet."""
    session = session or db.session
    return bool(
        session.new
        or session.dirty
        or session.deleted
        or session.info.get(_UNCOMMITTED_WRITES)
    )


@contextmanager
def unit_of_work():
    """
    Atomic boundary for one ledger movement.

    Yields the session. With a clean session it opens its own write
    transaction, commits on normal exit, and on any exception rolls back
    every statement issued inside the block and re-raises, so callers never
    observe a history row without its balance update (or the reverse).

    When the caller already has uncommitted writes on the session, the
    movement joins that transaction instead: nothing is committed or rolled
    back here, and the caller's commit or rollback settles its own writes
    and the movement together.
    """
    session = db.session
    if has_pending_writes(session):
        yield session
        return

    # Ends the read-only transaction left by earlier queries
    session.rollback()
    try:
        begin_write_transaction()
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on Customer.version_id).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
