"""Task board service — columns, tasks and their tags, checklist, comments, dependencies.

Transaction policy: public functions call db.session.commit() on success.

Business rules:
- A task lives in a column of its own project; new tasks default to the
  first column (Backlog).
- A task cannot depend on itself, and dependency edges stay inside one
  project.  Longer cycles are not detected.
- A comment reply must belong to the same task as its parent.
"""
import logging
from typing import Any

from portal.core.exceptions import ConflictError, NotFoundError, ValidationError
from portal.models import db
from portal.models.project import Project
from portal.models.task import (
    TASK_CATEGORIES,
    TASK_PRIORITIES,
    ChecklistItem,
    Task,
    TaskColumn,
    TaskComment,
    TaskDependency,
    TaskTag,
)
from portal.stores import (
    checklist_store,
    task_column_store,
    task_comment_store,
    task_dependency_store,
    task_store,
    task_tag_store,
)
from portal.utils.helpers import commit_session, parse_int, require_text, validate_enum

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("title", "description", "category", "priority", "assignee_id", "position")


def _get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def get_task(task_id: int) -> Task:
    task = task_store.get(task_id)
    if task is None:
        raise NotFoundError(resource="Task", resource_id=task_id)
    return task


def _get_column(project_id: int, column_id: int) -> TaskColumn:
    column = task_column_store.get(column_id)
    if column is None or column.project_id != project_id:
        raise NotFoundError(resource="TaskColumn", resource_id=column_id)
    return column


# ═════════════════════════════════════════════════════════════════════════════
# Columns
# ═════════════════════════════════════════════════════════════════════════════


def list_columns(project_id: int) -> list[TaskColumn]:
    _get_project(project_id)
    return task_column_store.find_where(project_id, order_by=(TaskColumn.position, TaskColumn.id))


def create_column(project_id: int, data: dict[str, Any]) -> TaskColumn:
    _get_project(project_id)
    name = require_text(data, "name", max_len=100)
    position = data.get("position")
    if position is None:
        position = task_column_store.count_by_project_id(project_id)
    column = task_column_store.create(
        project_id=project_id, name=name, position=parse_int(position, "position"),
    )
    commit_session("create task column")
    return column


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


def list_tasks(project_id: int, *, column_id: int | None = None) -> list[Task]:
    _get_project(project_id)
    if column_id is not None:
        return task_store.find_where(project_id, Task.column_id == column_id,
                                     order_by=(Task.position, Task.id))
    return task_store.find_where(project_id, order_by=(Task.column_id, Task.position, Task.id))


def create_task(project_id: int, data: dict[str, Any]) -> Task:
    """Create a task on the project's board.

    ``code`` defaults to ``<PROJECT KEY>-<n>``; ``column_id`` defaults to
    the first column.
    """
    project = _get_project(project_id)
    title = require_text(data, "title", max_len=255)
    validate_enum(data.get("category"), TASK_CATEGORIES, "category")
    priority = data.get("priority", "medium")
    validate_enum(priority, TASK_PRIORITIES, "priority")

    if data.get("column_id") is not None:
        column = _get_column(project_id, parse_int(data["column_id"], "column_id"))
    else:
        columns = list_columns(project_id)
        if not columns:
            raise ValidationError("Project has no board columns", details={"column_id": "required"})
        column = columns[0]

    code = (data.get("code") or "").strip()
    if not code:
        code = f"{project.key}-{task_store.count_by_project_id(project_id) + 1}"

    task = task_store.create(
        project_id=project_id,
        column_id=column.id,
        code=code,
        title=title,
        description=data.get("description", ""),
        category=data.get("category"),
        priority=priority,
        assignee_id=data.get("assignee_id"),
        position=parse_int(data.get("position") or 0, "position"),
    )
    commit_session("create task")
    return task


def update_task(task_id: int, data: dict[str, Any]) -> Task:
    task = get_task(task_id)
    partial = {k: v for k, v in data.items() if k in _UPDATABLE_FIELDS}
    if "title" in partial:
        partial["title"] = require_text(partial, "title", max_len=255)
    if "category" in partial:
        validate_enum(partial["category"], TASK_CATEGORIES, "category")
    if "priority" in partial:
        validate_enum(partial["priority"], TASK_PRIORITIES, "priority")
    task_store.update(task_id, partial)
    commit_session("update task")
    return task


def move_task(task_id: int, column_id: int, position: int | None = None) -> Task:
    """Move a task to another column of the same project."""
    task = get_task(task_id)
    column = _get_column(task.project_id, column_id)
    partial = {"column_id": column.id}
    if position is not None:
        partial["position"] = parse_int(position, "position")
    task_store.update(task_id, partial)
    commit_session("move task")
    return task


def delete_task(task_id: int) -> None:
    """Delete a task; its tags, checklist, comments and edges go with it."""
    get_task(task_id)
    for model, column in (
        (TaskTag, TaskTag.task_id),
        (ChecklistItem, ChecklistItem.task_id),
        (TaskComment, TaskComment.task_id),
    ):
        model.query.filter(column == task_id).delete(synchronize_session=False)
    TaskDependency.query.filter(
        (TaskDependency.task_id == task_id) | (TaskDependency.depends_on_task_id == task_id)
    ).delete(synchronize_session=False)
    task_store.delete_by_id(task_id)
    commit_session("delete task")


# ═════════════════════════════════════════════════════════════════════════════
# Tags, checklist, comments
# ═════════════════════════════════════════════════════════════════════════════


def add_tag(task_id: int, name: str) -> TaskTag:
    get_task(task_id)
    name = require_text({"name": name}, "name", max_len=50)
    existing = TaskTag.query.filter_by(task_id=task_id, name=name).first()
    if existing is not None:
        return existing
    tag = task_tag_store.create(task_id=task_id, name=name)
    commit_session("add tag")
    return tag


def remove_tag(task_id: int, name: str) -> bool:
    removed = TaskTag.query.filter_by(task_id=task_id, name=name).delete(synchronize_session=False)
    commit_session("remove tag")
    return bool(removed)


def add_checklist_item(task_id: int, text: str) -> ChecklistItem:
    get_task(task_id)
    text = require_text({"text": text}, "text", max_len=500)
    position = ChecklistItem.query.filter_by(task_id=task_id).count()
    item = checklist_store.create(task_id=task_id, text=text, position=position)
    commit_session("add checklist item")
    return item


def set_checklist_item(item_id: int, is_completed: bool) -> ChecklistItem:
    item = checklist_store.update(item_id, {"is_completed": bool(is_completed)})
    if item is None:
        raise NotFoundError(resource="ChecklistItem", resource_id=item_id)
    commit_session("update checklist item")
    return item


def get_checklist(task_id: int) -> list[ChecklistItem]:
    get_task(task_id)
    return checklist_store.find_all_by_parent_id(task_id)


def add_comment(task_id: int, content: str, *, author_id: int | None = None,
                parent_id: int | None = None) -> TaskComment:
    get_task(task_id)
    content = require_text({"content": content}, "content")
    if parent_id is not None:
        parent = task_comment_store.get(parent_id)
        if parent is None or parent.task_id != task_id:
            raise ValidationError("Parent comment must belong to the same task",
                                  details={"parent_id": parent_id})
    comment = task_comment_store.create(
        task_id=task_id, content=content, author_id=author_id, parent_id=parent_id,
    )
    commit_session("add comment")
    return comment


# ═════════════════════════════════════════════════════════════════════════════
# Dependencies
# ═════════════════════════════════════════════════════════════════════════════


def add_dependency(task_id: int, depends_on_task_id: int) -> TaskDependency:
    """Record that *task_id* depends on *depends_on_task_id*.

    Raises:
        ValidationError: Self-dependency, or tasks of different projects.
        ConflictError: The edge already exists.
    """
    if task_id == depends_on_task_id:
        raise ValidationError("A task cannot depend on itself",
                              details={"depends_on_task_id": depends_on_task_id})
    task = get_task(task_id)
    other = get_task(depends_on_task_id)
    if task.project_id != other.project_id:
        raise ValidationError("Dependent tasks must belong to the same project",
                              details={"depends_on_task_id": depends_on_task_id})
    duplicate = TaskDependency.query.filter_by(
        task_id=task_id, depends_on_task_id=depends_on_task_id,
    ).first()
    if duplicate is not None:
        raise ConflictError(resource="TaskDependency", field="depends_on_task_id",
                            value=str(depends_on_task_id))
    edge = task_dependency_store.create(task_id=task_id, depends_on_task_id=depends_on_task_id)
    commit_session("add task dependency")
    return edge


def list_dependencies(task_id: int) -> list[TaskDependency]:
    get_task(task_id)
    return task_dependency_store.find_all_by_parent_id(task_id)


def remove_dependency(dependency_id: int) -> bool:
    removed = task_dependency_store.delete_by_id(dependency_id)
    commit_session("remove task dependency")
    return removed
