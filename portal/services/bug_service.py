"""Bug report service.

Transaction policy: public functions call db.session.commit() on success.

``resolved_at`` is stamped when a bug enters resolved / closed and cleared
when it leaves them.
"""
import logging
from typing import Any

from portal.core.clock import now
from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db
from portal.models.bug import (
    BUG_SEVERITIES,
    BUG_STATUSES,
    INACTIVE_BUG_STATUSES,
    RESOLVED_STATUSES,
    BugReport,
)
from portal.models.environment import ENVIRONMENT_TYPES
from portal.models.project import Project
from portal.models.task import Task
from portal.stores import bug_store, task_store
from portal.utils.helpers import commit_session, parse_int, validate_enum

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("title", "description", "severity", "environment",
                     "reproduction_steps", "assigned_to", "task_id")


def _require_project(project_id: int) -> None:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)


def get_bug(bug_id: int) -> BugReport:
    bug = bug_store.get(bug_id)
    if bug is None:
        raise NotFoundError(resource="BugReport", resource_id=bug_id)
    return bug


def validate_bug_report(data: dict[str, Any]) -> list[str]:
    errors = []
    if not (data.get("title") or "").strip():
        errors.append("Title is required")
    if not data.get("severity"):
        errors.append("Severity is required")
    if not data.get("environment"):
        errors.append("Environment is required")
    if not (data.get("reproduction_steps") or "").strip():
        errors.append("Reproduction steps are required")
    if not data.get("reported_by"):
        errors.append("Reporter ID is required")
    return errors


def _check_task(project_id: int, task_id) -> int | None:
    """Parsed task id, or None when unset; the task must belong to the project."""
    if task_id is None:
        return None
    task_id = parse_int(task_id, "task_id")
    task = task_store.get(task_id)
    if task is None or task.project_id != project_id:
        raise ValidationError("Task does not belong to this project", details={"task_id": task_id})
    return task_id


def list_bugs(project_id: int, *, severity: str | None = None, status: str | None = None) -> list[BugReport]:
    _require_project(project_id)
    criteria = []
    if severity:
        criteria.append(BugReport.severity == severity)
    if status:
        criteria.append(BugReport.status == status)
    return bug_store.find_where(project_id, *criteria)


def create_bug(project_id: int, data: dict[str, Any]) -> BugReport:
    """Report a bug.

    Raises:
        ValidationError: Missing required fields or unknown enum values.
    """
    _require_project(project_id)
    errors = validate_bug_report(data)
    if errors:
        raise ValidationError("; ".join(errors), details={"errors": errors})
    validate_enum(data["severity"], BUG_SEVERITIES, "severity")
    validate_enum(data["environment"], ENVIRONMENT_TYPES, "environment")
    status = data.get("status", "open")
    validate_enum(status, BUG_STATUSES, "status")
    task_id = _check_task(project_id, data.get("task_id"))

    bug = bug_store.create(
        project_id=project_id,
        task_id=task_id,
        title=data["title"].strip(),
        description=data.get("description", ""),
        severity=data["severity"],
        status=status,
        environment=data["environment"],
        reproduction_steps=data["reproduction_steps"],
        reported_by=data["reported_by"],
        assigned_to=data.get("assigned_to"),
        resolved_at=now() if status in RESOLVED_STATUSES else None,
    )
    commit_session("create bug report")
    if bug.severity == "critical":
        logger.info("Critical bug reported id=%s project=%s", bug.id, project_id,
                    extra={"project_id": project_id, "event_type": "bug.critical"})
    return bug


def update_bug(bug_id: int, data: dict[str, Any]) -> BugReport:
    bug = get_bug(bug_id)
    partial = {k: v for k, v in data.items() if k in _UPDATABLE_FIELDS}
    if "severity" in partial:
        validate_enum(partial["severity"], BUG_SEVERITIES, "severity")
    if "environment" in partial:
        validate_enum(partial["environment"], ENVIRONMENT_TYPES, "environment")
    if "task_id" in partial:
        partial["task_id"] = _check_task(bug.project_id, partial["task_id"])
    if "status" in data:
        partial.update(_status_change(bug, data["status"]))
    bug_store.update(bug_id, partial)
    commit_session("update bug report")
    return bug


def _status_change(bug: BugReport, status: str) -> dict:
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    validate_enum(status, BUG_STATUSES, "status")
    change = {"status": status}
    if status in RESOLVED_STATUSES:
        if bug.status not in RESOLVED_STATUSES or bug.resolved_at is None:
            change["resolved_at"] = now()
    else:
        change["resolved_at"] = None
    return change


def update_bug_status(bug_id: int, status: str) -> BugReport:
    bug = get_bug(bug_id)
    bug_store.update(bug_id, _status_change(bug, status))
    commit_session("update bug status")
    return bug


def delete_bug(bug_id: int) -> None:
    get_bug(bug_id)
    bug_store.delete_by_id(bug_id)
    commit_session("delete bug report")


def find_open_critical_bugs(project_id: int) -> list[BugReport]:
    return bug_store.find_where(
        project_id,
        BugReport.severity == "critical",
        BugReport.status.notin_(sorted(INACTIVE_BUG_STATUSES)),
    )


def get_test_statistics(project_id: int) -> dict:
    """Bug counts by status / severity and the resolution rate (percent)."""
    bugs = list_bugs(project_id)
    total = len(bugs)
    resolved = sum(1 for b in bugs if b.status in RESOLVED_STATUSES)
    return {
        "bugs": {
            "total": total,
            "open": sum(1 for b in bugs if b.status == "open"),
            "in_progress": sum(1 for b in bugs if b.status == "in_progress"),
            "resolved": resolved,
            "critical": sum(1 for b in bugs if b.severity == "critical"),
            "high": sum(1 for b in bugs if b.severity == "high"),
        },
        "resolution_rate": round(resolved / total * 100) if total else 0,
        "critical_bug_count": len(find_open_critical_bugs(project_id)),
    }
