# Overview: Transaction helpers shared by the stock and sale services.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock contention.

    Only wrap work that is safe to repeat: the session is rolled back before
    each retry, so func must not depend on state written by a failed attempt.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def begin_write_transaction() -> None:
    """
    Take the database write lock up front.

    SQLite defers locking until the first write, which lets two writers
    interleave reads and then fail with "database is locked" half way.
    BEGIN IMMEDIATE serializes writers at the start instead. Other engines
    rely on the guarded UPDATE statements for per-row atomicity.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def open_write_transaction(*, attempts: int = 3, backoff_base: float = 0.1) -> None:
    """Acquire the write lock, retrying while another writer holds it."""
    run_with_retry(begin_write_transaction, attempts=attempts, backoff_base=backoff_base)

