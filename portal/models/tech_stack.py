"""Tech-stack selection model."""

from datetime import datetime, timezone

from portal.models import db

TECH_STACK_CATEGORIES = ("language", "framework", "database", "hosting", "other")


class TechStackItem(db.Model):
    """One technology chosen for a project.

    ``is_locked`` is set for every item of a project at once by
    ``tech_stack_service.lock_tech_stack``; a single item is only unlocked
    transiently while a Manager/Admin edits it.
    """

    __tablename__ = "project_tech_stack"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category = db.Column(
        db.String(20),
        nullable=False,
        comment="language | framework | database | hosting | other",
    )
    name = db.Column(db.String(100), nullable=False)
    version = db.Column(db.String(50), nullable=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by = db.Column(db.String(100), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "category": self.category,
            "name": self.name,
            "version": self.version,
            "is_locked": bool(self.is_locked),
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "locked_by": self.locked_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TechStackItem {self.id}: {self.category}/{self.name}>"
