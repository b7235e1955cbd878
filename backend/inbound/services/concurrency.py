# Overview: Store-level locking and retry helpers shared by the reconciliation services.

from __future__ import annotations

import hashlib
import time
from datetime import datetime

from sqlalchemy import insert as sa_insert, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import ScopeLock
from ..validation import ConflictError


_ON_CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_name() -> str:
    return db.session.get_bind().dialect.name


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_key_hash(key: str) -> int:
    """Stable signed 64-bit id for an arbitrary lock key (pg advisory lock space)."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def insert_ignore(model, values: dict, *, conflict_columns: tuple[str, ...]) -> bool:
    """
    Insert a row unless one already exists for conflict_columns.

    Returns True when this call wrote the row. On PostgreSQL and SQLite this is
    a single INSERT ... ON CONFLICT DO NOTHING, so concurrent callers resolve
    deterministically. Elsewhere it is select-then-insert and a lost race
    surfaces as IntegrityError for the caller's retry.
    """
    dialect = dialect_name()
    insert_factory = _ON_CONFLICT_INSERTS.get(dialect)
    if insert_factory is not None:
        stmt = (
            insert_factory(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )
        result = db.session.execute(stmt)
        return result.rowcount == 1

    existing = (
        db.session.query(model)
        .filter_by(**{column: values[column] for column in conflict_columns})
        .first()
    )
    if existing is not None:
        return False
    db.session.execute(sa_insert(model).values(**values))
    return True


def acquire_scope_lock(key: str) -> None:
    """
    Take an exclusive lock on `key` for the rest of the current transaction.

    Released automatically on commit/rollback. PostgreSQL uses a
    transaction-scoped advisory lock; other stores lock a scope_locks row,
    re-creating it if prune_scope_locks removed it in the meantime.
    """
    if dialect_name() == "postgresql":
        db.session.execute(
            text("SELECT pg_advisory_xact_lock(:lock_id)"),
            {"lock_id": lock_key_hash(key)},
        )
        return

    for _ in range(2):
        insert_ignore(ScopeLock, {"key": key}, conflict_columns=("key",))
        row = lock_for_update(db.session.query(ScopeLock).filter(ScopeLock.key == key)).first()
        if row is not None:
            return
    raise ConflictError(f"Could not lock {key}, please rescan")


def prune_scope_locks(older_than: datetime) -> int:
    """
    Delete scope_locks rows created before older_than.

    Each PO and tag ever scanned leaves a row behind on stores without
    advisory locks. Rows are recreated on demand, so pruning only costs an
    extra insert the next time a key is locked. Commits.
    """
    deleted = (
        db.session.query(ScopeLock)
        .filter(ScopeLock.created_at < older_than)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
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


def run_with_conflict_retry(func, *, retries: int = 1):
    """
    Execute a DB operation, re-running it after a unique-constraint race.

    The whole transaction is rolled back before each retry. A race that
    survives every retry is raised as ConflictError.
    """
    for attempt in range(retries + 1):
        try:
            return func()
        except IntegrityError as exc:
            db.session.rollback()
            if attempt >= retries:
                raise ConflictError("Concurrent update conflict, please rescan") from exc
