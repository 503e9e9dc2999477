# Overview: Row locking for check-then-write workflows (cage booking, stock decrements).

from __future__ import annotations


def lock_for_update(query):
    """
    Lock the selected rows until the current transaction ends.

    Booking a cage and decrementing stock both read a row, check it, then
    write; the lock keeps a concurrent request from passing the same check.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()
