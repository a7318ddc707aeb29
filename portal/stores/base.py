"""
Entity-store base classes.

A store is pure storage for one entity kind, keyed by project id.  It has no
business rules: services decide *whether* to write, stores only *how*.

Contract shared by every store:
    find_all_by_project_id(pid) -> list      (empty list, never an error)
    get(id)                     -> record | None
    count_where / find_where / first_where(pid, *criteria)   filtered reads
    create(**fields)            -> record     (flushed, id assigned)
    update(id, partial)         -> record | None
    delete_by_id(id)            -> bool
    delete_by_project_id(pid)   -> int        (rows removed)
    count_by_project_id(pid)    -> int

Connectivity problems (``OperationalError``, pool ``TimeoutError``,
``InterfaceError``) surface as ``TransientStoreError``; constraint violations
propagate unchanged for the service to interpret.

Writes ``flush`` only — the calling service owns the transaction.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import or_, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from portal.core.exceptions import TransientStoreError
from portal.models import db

_TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


def store_operation(func):
    """Translate connectivity failures of a store method into TransientStoreError."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except _TRANSIENT_ERRORS as exc:
            raise TransientStoreError(f"{self.table_name}.{func.__name__}", exc) from exc

    return wrapper


@dataclass(frozen=True)
class DependentRegistration:
    """A table whose rows must disappear together with their project."""

    table_name: str
    delete_by_project_id: Callable[[int], int]
    count_by_project_id: Callable[[int], int]


class ProjectScopedStore:
    """Store for a model carrying its own ``project_id`` column."""

    def __init__(self, model):
        self.model = model
        self.table_name = model.__tablename__

    # ── Scope ────────────────────────────────────────────────────────────

    def _project_filter(self, project_id: int):
        return self.model.project_id == project_id

    def query_for_project(self, project_id: int):
        """Query of this store's rows for one project (for filtered reads)."""
        return self.model.query.filter(self._project_filter(project_id))

    # ── Reads ────────────────────────────────────────────────────────────

    @store_operation
    def find_all_by_project_id(self, project_id: int) -> list:
        return self.query_for_project(project_id).order_by(self.model.id).all()

    @store_operation
    def get(self, entity_id: int):
        return db.session.get(self.model, entity_id)

    @store_operation
    def count_by_project_id(self, project_id: int) -> int:
        return self.query_for_project(project_id).count()

    @store_operation
    def count_where(self, project_id: int, *criteria) -> int:
        return self.query_for_project(project_id).filter(*criteria).count()

    @store_operation
    def find_where(self, project_id: int, *criteria, order_by=None) -> list:
        query = self.query_for_project(project_id).filter(*criteria)
        if order_by is None:
            order_by = (self.model.id,)
        return query.order_by(*order_by).all()

    @store_operation
    def first_where(self, project_id: int, *criteria, order_by=None):
        query = self.query_for_project(project_id).filter(*criteria)
        if order_by is None:
            order_by = (self.model.id,)
        return query.order_by(*order_by).first()

    # ── Writes ───────────────────────────────────────────────────────────

    @store_operation
    def create(self, **fields: Any):
        record = self.model(**fields)
        db.session.add(record)
        db.session.flush()
        return record

    @store_operation
    def update(self, entity_id: int, partial: dict):
        record = db.session.get(self.model, entity_id)
        if record is None:
            return None
        for field, value in partial.items():
            setattr(record, field, value)
        db.session.flush()
        return record

    @store_operation
    def delete_by_id(self, entity_id: int) -> bool:
        record = db.session.get(self.model, entity_id)
        if record is None:
            return False
        db.session.delete(record)
        db.session.flush()
        return True

    @store_operation
    def delete_by_project_id(self, project_id: int) -> int:
        return (
            self.model.query
            .filter(self._project_filter(project_id))
            .delete(synchronize_session=False)
        )

    def as_dependent(self) -> DependentRegistration:
        return DependentRegistration(
            table_name=self.table_name,
            delete_by_project_id=self.delete_by_project_id,
            count_by_project_id=self.count_by_project_id,
        )


class OwnedStore(ProjectScopedStore):
    """Store for a model owned through a parent that carries ``project_id``.

    E.g. checklist items belong to a task, deployments to an environment.
    ``fk_columns`` lists every column pointing at the parent; a row is in a
    project's scope when any of them references a parent of that project.
    """

    def __init__(self, model, parent_model, *fk_columns: str):
        super().__init__(model)
        self.parent_model = parent_model
        self.fk_columns = fk_columns or ("id",)

    def _project_filter(self, project_id: int):
        parent_ids = select(self.parent_model.id).where(
            self.parent_model.project_id == project_id
        )
        return or_(*(getattr(self.model, col).in_(parent_ids) for col in self.fk_columns))

    @store_operation
    def find_all_by_parent_id(self, parent_id: int) -> list:
        column = getattr(self.model, self.fk_columns[0])
        return self.model.query.filter(column == parent_id).order_by(self.model.id).all()
