"""
Per-project mutual exclusion.

Phase transitions (validate → execute) and cascade deletes must not
interleave for the same project id.  ``project_mutex`` serialises them:

  1. an in-process re-entrant lock keyed by project id, so worker threads of
     one process queue up;
  2. ``SELECT … FOR UPDATE`` on the project row, so separate processes
     sharing a PostgreSQL database queue up as well.  The row lock lives
     until the surrounding transaction commits or rolls back.  SQLite does
     not render FOR UPDATE; there the process lock is the only guard.

Different project ids never contend.

Usage:
    from portal.core.locks import project_mutex

    with project_mutex(project_id):
        ...validate, write, commit...
"""

import threading
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError

from portal.core.exceptions import TransientStoreError
from portal.models import db
from portal.models.project import Project

_registry_lock = threading.Lock()
# project_id → [RLock, number of threads holding or waiting]
_project_locks: dict[int, list] = {}


def _lock_project_row(project_id: int) -> None:
    try:
        (
            db.session.query(Project.id)
            .filter(Project.id == project_id)
            .with_for_update()
            .first()
        )
    except OperationalError as exc:
        db.session.rollback()
        raise TransientStoreError("lock project row", exc) from exc


@contextmanager
def project_mutex(project_id: int, *, lock_row: bool = True):
    """Hold the exclusive lifecycle lock of one project for the ``with`` body."""
    with _registry_lock:
        entry = _project_locks.setdefault(project_id, [threading.RLock(), 0])
        entry[1] += 1
    lock = entry[0]
    lock.acquire()
    try:
        if lock_row:
            _lock_project_row(project_id)
        yield
    finally:
        lock.release()
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                _project_locks.pop(project_id, None)


def held_project_ids() -> set[int]:
    """Project ids currently locked or awaited (diagnostics)."""
    with _registry_lock:
        return set(_project_locks)
