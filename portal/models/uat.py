"""
Intranet Portal — Project Lifecycle Engine
User acceptance testing models.

Models:
    - UATFeedback: feedback raised by the client during UAT
    - Signoff: formal design / UAT / go-live sign-off of a project
"""

from datetime import datetime, timezone

from portal.models import db

FEEDBACK_STATUSES = ("pending", "addressed", "rejected")
SIGNOFF_TYPES = ("design", "uat", "go_live")


class UATFeedback(db.Model):
    __tablename__ = "uat_feedback"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    feature_name = db.Column(db.String(200), nullable=True)
    page_url = db.Column(db.String(500), nullable=True)
    feedback_text = db.Column(db.Text, nullable=False)
    provided_by = db.Column(db.String(200), nullable=False)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="pending",
        comment="pending | addressed | rejected",
    )
    addressed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "feature_name": self.feature_name,
            "page_url": self.page_url,
            "feedback_text": self.feedback_text,
            "provided_by": self.provided_by,
            "status": self.status,
            "addressed_at": self.addressed_at.isoformat() if self.addressed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Signoff(db.Model):
    """
    Formal sign-off of a project milestone.

    Business rules (enforced in ``uat_service``):
    - A ``uat`` sign-off requires every UAT feedback item to be non-pending.
    - At most one ``uat`` sign-off per project.
    """

    __tablename__ = "project_signoffs"
    __table_args__ = (
        # At most one UAT sign-off per project
        db.Index(
            "uq_project_signoffs_uat", "project_id", unique=True,
            sqlite_where=db.text("signoff_type = 'uat'"),
            postgresql_where=db.text("signoff_type = 'uat'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    signoff_type = db.Column(db.String(20), nullable=False, comment="design | uat | go_live")
    approver_name = db.Column(db.String(200), nullable=False)
    approver_email = db.Column(db.String(200), nullable=True)
    signature_data = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    signed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "signoff_type": self.signoff_type,
            "approver_name": self.approver_name,
            "approver_email": self.approver_email,
            "has_signature": bool(self.signature_data),
            "notes": self.notes,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
        }
