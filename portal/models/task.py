"""
Intranet Portal — Project Lifecycle Engine
Task board models.

Models:
    - TaskColumn: board column (Backlog, To Do, In Progress, Review, Done)
    - Task: unit of work on a project board
    - TaskTag: free-text label on a task
    - ChecklistItem: completion checklist entry of a task
    - TaskComment: discussion entry on a task (threaded via parent_id)
    - TaskDependency: "task depends on other task" edge

Only ``TaskColumn`` and ``Task`` carry ``project_id``; the other rows are
owned through their task.
"""

from datetime import datetime, timezone

from portal.models import db

DEFAULT_COLUMNS = ("Backlog", "To Do", "In Progress", "Review", "Done")
TERMINAL_COLUMN_NAME = "done"

TASK_CATEGORIES = ("frontend", "backend", "design", "devops", "qa")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")


def _utcnow():
    return datetime.now(timezone.utc)


# ── TaskColumn ───────────────────────────────────────────────────────────────


class TaskColumn(db.Model):
    __tablename__ = "task_columns"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    @property
    def is_terminal(self) -> bool:
        return (self.name or "").strip().lower() == TERMINAL_COLUMN_NAME

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "position": self.position,
            "is_terminal": self.is_terminal,
        }

    def __repr__(self):
        return f"<TaskColumn {self.id}: {self.name}>"


# ── Task ─────────────────────────────────────────────────────────────────────


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    column_id = db.Column(
        db.Integer,
        db.ForeignKey("task_columns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(
        db.String(20),
        nullable=True,
        comment="frontend | backend | design | devops | qa",
    )
    priority = db.Column(db.String(20), nullable=False, default="medium", comment="low | medium | high | urgent")
    assignee_id = db.Column(db.Integer, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    tags = db.relationship(
        "TaskTag", backref="task", lazy="dynamic", passive_deletes=True,
    )
    checklist = db.relationship(
        "ChecklistItem", backref="task", lazy="dynamic", passive_deletes=True,
        order_by="ChecklistItem.position",
    )
    comments = db.relationship(
        "TaskComment", backref="task", lazy="dynamic", passive_deletes=True,
        order_by="TaskComment.created_at",
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "column_id": self.column_id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "position": self.position,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            result["tags"] = [t.name for t in self.tags]
            result["checklist"] = [c.to_dict() for c in self.checklist]
            result["comments"] = [c.to_dict() for c in self.comments]
        return result

    def __repr__(self):
        return f"<Task {self.id}: {self.code}>"


# ── Task children ────────────────────────────────────────────────────────────


class TaskTag(db.Model):
    __tablename__ = "task_tags"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(50), nullable=False)


class ChecklistItem(db.Model):
    __tablename__ = "checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = db.Column(db.String(500), nullable=False)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "text": self.text,
            "is_completed": bool(self.is_completed),
            "position": self.position,
        }


class TaskComment(db.Model):
    __tablename__ = "task_comments"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("task_comments.id", ondelete="CASCADE"),
        nullable=True,
    )
    author_id = db.Column(db.Integer, nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "parent_id": self.parent_id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TaskDependency(db.Model):
    """Edge ``task_id`` → ``depends_on_task_id``. Self-edges are rejected by the service."""

    __tablename__ = "task_dependencies"
    __table_args__ = (
        db.UniqueConstraint("task_id", "depends_on_task_id", name="uq_task_dependency"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    depends_on_task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "depends_on_task_id": self.depends_on_task_id,
        }
