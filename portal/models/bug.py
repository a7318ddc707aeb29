"""Bug report model."""

from datetime import datetime, timezone

from portal.models import db

BUG_SEVERITIES = ("low", "medium", "high", "critical")
BUG_STATUSES = ("open", "in_progress", "resolved", "closed", "wont_fix")

# resolved_at is set iff the status is one of these
RESOLVED_STATUSES = frozenset({"resolved", "closed"})
# critical bugs in these statuses no longer block a phase gate
INACTIVE_BUG_STATUSES = frozenset({"resolved", "closed", "wont_fix"})


class BugReport(db.Model):
    __tablename__ = "bug_reports"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id = db.Column(
        db.Integer,
        db.ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), nullable=False, comment="low | medium | high | critical")
    status = db.Column(
        db.String(20),
        nullable=False,
        default="open",
        comment="open | in_progress | resolved | closed | wont_fix",
    )
    environment = db.Column(db.String(20), nullable=True, comment="local | staging | production")
    reproduction_steps = db.Column(db.Text, default="")
    reported_by = db.Column(db.Integer, nullable=True)
    assigned_to = db.Column(db.Integer, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "status": self.status,
            "environment": self.environment,
            "reproduction_steps": self.reproduction_steps,
            "reported_by": self.reported_by,
            "assigned_to": self.assigned_to,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<BugReport {self.id}: {self.severity}/{self.status}>"
