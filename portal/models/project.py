"""
Intranet Portal — Project Lifecycle Engine
Project domain models.

Models:
    - Project: root entity; every other lifecycle entity is owned by one project
    - Phase: one of the six fixed lifecycle phases of a project

The phase order is fixed and total:
    kickoff → technical_planning → development → internal_testing → uat → go_live
"""

from datetime import datetime, timezone

from portal.models import db

# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = ("planning", "active", "completed", "on_hold")

PHASE_ORDER = (
    "kickoff",
    "technical_planning",
    "development",
    "internal_testing",
    "uat",
    "go_live",
)

PHASE_STATUSES = ("pending", "in_progress", "completed", "blocked")


# ── Project ──────────────────────────────────────────────────────────────────


class Project(db.Model):
    """
    A delivery project tracked by the portal.

    Children are removed by the cascade coordinator
    (``portal.services.project_deletion``), never through ORM cascades;
    relationships are therefore declared with ``passive_deletes=True``.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(30),
        nullable=False,
        default="planning",
        comment="planning | active | completed | on_hold",
    )
    manager_id = db.Column(db.Integer, nullable=True, comment="User id of the project manager")
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships ────────────────────────────────────────────────────
    phases = db.relationship(
        "Phase", backref="project", lazy="dynamic",
        passive_deletes=True, order_by="Phase.position",
    )

    def to_dict(self, include_children=False):
        """Serialize project to dictionary."""
        result = {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "manager_id": self.manager_id,
            "progress": self.progress,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            result["phases"] = [p.to_dict() for p in self.phases]
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.key}>"


# ── Phase ────────────────────────────────────────────────────────────────────


class Phase(db.Model):
    """
    Lifecycle phase of a project.

    All six rows are created together with the project; ``position`` is the
    index of ``phase_type`` in ``PHASE_ORDER``.
    """

    __tablename__ = "project_phases"
    __table_args__ = (
        db.UniqueConstraint("project_id", "phase_type", name="uq_phase_project_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase_type = db.Column(
        db.String(30),
        nullable=False,
        comment="kickoff | technical_planning | development | internal_testing | uat | go_live",
    )
    position = db.Column(db.Integer, nullable=False, comment="0-5, matches PHASE_ORDER")
    status = db.Column(
        db.String(30),
        nullable=False,
        default="pending",
        comment="pending | in_progress | completed | blocked",
    )
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    blocked_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_type": self.phase_type,
            "position": self.position,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "blocked_reason": self.blocked_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Phase {self.id}: {self.phase_type} ({self.status})>"
