"""Project service layer — project bootstrap and CRUD.

Transaction policy: public functions call db.session.commit() on success.
Internal helpers use flush() for ID generation within a transaction.

Provides:
- Project creation with the fixed six-phase timeline, the three standard
  environments and the default task board
- Project read / list / update
- Audit trail for create and update

Deletion lives in ``project_deletion`` (cascade coordinator).
"""
import logging
from typing import Any

from portal.core.clock import now
from portal.core.exceptions import ConflictError, NotFoundError
from portal.models import db
from portal.models.audit import AuditLog, write_audit
from portal.models.environment import ENVIRONMENT_TYPES
from portal.models.project import PHASE_ORDER, PROJECT_STATUSES, Project
from portal.models.task import DEFAULT_COLUMNS
from portal.stores import environment_store, phase_store, task_column_store
from portal.utils.helpers import (
    commit_session,
    parse_date,
    require_text,
    validate_enum,
    validate_length,
)

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("name", "description", "status", "manager_id", "start_date", "end_date")


# ── Bootstrap templates ──────────────────────────────────────────────────


def _create_phase_timeline(project: Project) -> None:
    """Create all six phases; Kickoff starts immediately.

    Must be called within an active transaction (after project flush).
    """
    started = now()
    for position, phase_type in enumerate(PHASE_ORDER):
        is_first = position == 0
        phase_store.create(
            project_id=project.id,
            phase_type=phase_type,
            position=position,
            status="in_progress" if is_first else "pending",
            started_at=started if is_first else None,
        )


def _create_environments(project: Project) -> None:
    for env_type in ENVIRONMENT_TYPES:
        environment_store.create(project_id=project.id, env_type=env_type)


def _create_board(project: Project) -> None:
    for position, name in enumerate(DEFAULT_COLUMNS):
        task_column_store.create(project_id=project.id, name=name, position=position)


# ═════════════════════════════════════════════════════════════════════════════
# PROJECT CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_projects(*, status: str | None = None) -> list[Project]:
    """List projects, optionally filtered by status, newest first."""
    query = Project.query.order_by(Project.created_at.desc(), Project.id.desc())
    if status:
        query = query.filter_by(status=status)
    return query.all()


def get_project(project_id: int) -> Project:
    """Fetch a project by id.

    Raises:
        NotFoundError: If no project has this id.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def create_project(data: dict[str, Any], *, actor: str | None = None) -> Project:
    """Create a project together with its phases, environments and board.

    Args:
        data: Input dict — name and key required; description, status,
            manager_id, start_date, end_date optional.
        actor: Acting user id, recorded in the audit trail.

    Returns:
        The committed Project.

    Raises:
        ValidationError: Missing name/key, bad status, over-long fields.
        ConflictError: Another project already uses this key.
    """
    name = require_text(data, "name", max_len=200)
    key = require_text(data, "key", max_len=50).upper()

    status = data.get("status", "planning")
    validate_enum(status, PROJECT_STATUSES, "status")

    if Project.query.filter_by(key=key).first() is not None:
        raise ConflictError(resource="Project", field="key", value=key)

    project = Project(
        key=key,
        name=name,
        description=data.get("description", ""),
        status=status,
        manager_id=data.get("manager_id"),
        progress=0,
        start_date=parse_date(data.get("start_date")),
        end_date=parse_date(data.get("end_date")),
    )
    db.session.add(project)
    db.session.flush()

    _create_phase_timeline(project)
    _create_environments(project)
    _create_board(project)

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="create",
        actor=actor,
        project_id=project.id,
        diff={"key": {"old": None, "new": key}, "name": {"old": None, "new": name}},
        timestamp=now(),
    )

    commit_session("create project")
    logger.info("Project created id=%s key=%s", project.id, key,
                extra={"project_id": project.id, "actor": actor, "event_type": "project.create"})
    return project


def update_project(project_id: int, data: dict[str, Any], *, actor: str | None = None) -> Project:
    """Update a project's descriptive fields.

    ``key`` and ``progress`` are not updatable: the key is the project's
    stable identifier and progress is derived from the phase timeline.
    """
    project = get_project(project_id)

    if "name" in data:
        data = {**data, "name": require_text(data, "name", max_len=200)}
    if "status" in data:
        validate_enum(data["status"], PROJECT_STATUSES, "status")
    if "description" in data:
        validate_length(data["description"], 10_000, "description")

    changes: dict[str, dict] = {}
    for field in _UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ("start_date", "end_date"):
            value = parse_date(value)
        old_value = getattr(project, field)
        if old_value != value:
            changes[field] = {"old": old_value, "new": value}
            setattr(project, field, value)

    if changes:
        write_audit(
            entity_type="project",
            entity_id=project.id,
            action="update",
            actor=actor,
            project_id=project.id,
            diff=changes,
            timestamp=now(),
        )
    commit_session("update project")
    return project


def list_audit_logs(project_id: int, *, action: str | None = None) -> list[AuditLog]:
    """Audit trail of a project, newest first.

    Works for deleted projects too; audit rows are never cascaded.
    """
    query = AuditLog.query.filter(AuditLog.project_id == project_id)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).all()
