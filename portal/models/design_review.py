"""
Intranet Portal — Project Lifecycle Engine
Design review model.

A review is opened for a wireframe, mockup or figma_link resource.  Approving
it pins ``version_locked`` to the resource version that was reviewed.
"""

from datetime import datetime, timezone

from portal.models import db

REVIEW_STATUSES = ("pending", "approved", "rejected", "change_requested")
REVIEWABLE_STATUSES = frozenset({"pending", "change_requested"})


class DesignReview(db.Model):
    __tablename__ = "design_reviews"
    __table_args__ = (
        # At most one pending review per resource
        db.Index(
            "uq_design_reviews_pending", "resource_id", unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    resource_id = db.Column(
        db.Integer,
        db.ForeignKey("project_resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = db.Column(
        db.String(20),
        nullable=False,
        default="pending",
        comment="pending | approved | rejected | change_requested",
    )
    reviewer_id = db.Column(db.Integer, nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comments = db.Column(db.Text, nullable=True)
    version_locked = db.Column(db.Integer, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    resource = db.relationship("Resource")

    def to_dict(self, include_resource=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "resource_id": self.resource_id,
            "status": self.status,
            "reviewer_id": self.reviewer_id,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "comments": self.comments,
            "version_locked": self.version_locked,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_resource:
            result["resource"] = self.resource.to_dict() if self.resource else None
        return result

    def __repr__(self):
        return f"<DesignReview {self.id}: resource {self.resource_id} ({self.status})>"
