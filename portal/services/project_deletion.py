"""
Cascade deletion of a project.

``delete_project`` removes a project and every row it owns as a single
all-or-nothing transaction:

  1. lock the project (per-project mutex + row lock); it must exist
  2. delete every registered dependent table, children first
     (``portal.stores.registry.PROJECT_DEPENDENTS``)
  3. delete the project row
  4. re-scan every registered table; any remaining row aborts the delete
  5. write the audit row and commit

Other projects' rows are never touched: each dependent store filters by the
project id.  Audit rows are not dependents and outlive the project.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from portal.core.clock import now
from portal.core.exceptions import DataIntegrityError, NotFoundError, TransientStoreError
from portal.core.locks import project_mutex
from portal.models import db
from portal.models.audit import write_audit
from portal.models.project import Project
from portal.stores.registry import PROJECT_DEPENDENTS
from portal.utils.helpers import commit_session

logger = logging.getLogger(__name__)


@dataclass
class DeletionReport:
    project_id: int
    deleted_counts: dict[str, int] = field(default_factory=dict)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted_counts.values())

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "deleted_counts": dict(self.deleted_counts),
            "total_deleted": self.total_deleted,
        }


def residual_rows(project_id: int) -> dict[str, int]:
    """Rows still owned by *project_id*, per registered table (non-zero only)."""
    residue = {}
    for registration in PROJECT_DEPENDENTS:
        count = registration.count_by_project_id(project_id)
        if count:
            residue[registration.table_name] = count
    return residue


def count_dependents(project_id: int) -> dict[str, int]:
    """Row count of every registered table for a project (zeros included)."""
    return {r.table_name: r.count_by_project_id(project_id) for r in PROJECT_DEPENDENTS}


def delete_project(project_id: int, *, actor: str | None = None) -> DeletionReport:
    """Delete a project and everything it owns.

    Returns:
        DeletionReport with the number of rows removed per table.

    Raises:
        NotFoundError: No project with this id (nothing changed).
        DataIntegrityError: Rows survived the cascade (rolled back).
        TransientStoreError: A store operation failed (rolled back).
    """
    with project_mutex(project_id):
        try:
            project = db.session.get(Project, project_id)
            if project is None:
                raise NotFoundError(resource="Project", resource_id=project_id)
            project_key = project.key

            report = DeletionReport(project_id=project_id)
            for registration in PROJECT_DEPENDENTS:
                report.deleted_counts[registration.table_name] = (
                    registration.delete_by_project_id(project_id)
                )

            deleted = Project.query.filter(Project.id == project_id).delete(synchronize_session=False)
            report.deleted_counts[Project.__tablename__] = deleted
            # Bulk deletes bypass the identity map
            db.session.expunge(project)

            residue = residual_rows(project_id)
            if residue or deleted != 1:
                raise DataIntegrityError(
                    f"Cascade delete of project id={project_id} left rows behind",
                    project_id=project_id,
                    details={"residual_rows": residue, "project_rows_deleted": deleted},
                )

            write_audit(
                entity_type="project",
                entity_id=project_id,
                action="delete",
                actor=actor,
                project_id=project_id,
                diff={"key": {"old": project_key, "new": None}, "deleted": report.deleted_counts},
                timestamp=now(),
            )
            commit_session("delete project")
        except DataIntegrityError as exc:
            db.session.rollback()
            logger.error("Project delete rolled back project=%s: %s details=%s",
                         project_id, exc, exc.details,
                         extra={"project_id": project_id, "actor": actor,
                                "event_type": "project.delete_integrity"})
            raise
        except (NotFoundError, TransientStoreError):
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise TransientStoreError("delete project", exc) from exc

    logger.info("Project deleted id=%s key=%s rows=%d", project_id, project_key, report.total_deleted,
                extra={"project_id": project_id, "actor": actor, "event_type": "project.delete"})
    return report
