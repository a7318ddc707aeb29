"""Project resource model (sitemaps, SRS documents, design files, assets, credentials)."""

from datetime import datetime, timezone

from portal.models import db

RESOURCE_TYPES = (
    "sitemap", "srs", "wireframe", "mockup", "figma_link", "asset", "credential",
)
RESOURCE_STATUSES = ("pending", "approved", "rejected")

DESIGN_RESOURCE_TYPES = frozenset({"wireframe", "mockup", "figma_link"})

# Allowed file extensions per resource type; an empty tuple means the type
# is not file-backed (URL or encrypted payload instead).
VALID_FILE_FORMATS = {
    "sitemap": ("pdf", "doc", "docx", "xls", "xlsx", "png", "jpg", "jpeg"),
    "srs": ("pdf", "doc", "docx", "md"),
    "wireframe": ("pdf", "png", "jpg", "jpeg", "fig", "xd"),
    "mockup": ("pdf", "png", "jpg", "jpeg", "fig", "xd", "psd"),
    "figma_link": (),
    "asset": ("zip", "png", "jpg", "jpeg", "svg", "ttf", "otf", "woff", "woff2"),
    "credential": (),
}


class Resource(db.Model):
    """
    Versioned project resource.

    Re-uploading bumps ``version`` and resets the approval; approving stamps
    ``approved_by`` / ``approved_at``.
    """

    __tablename__ = "project_resources"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = db.Column(
        db.String(30),
        nullable=False,
        comment="sitemap | srs | wireframe | mockup | figma_link | asset | credential",
    )
    name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=True)
    url = db.Column(db.String(500), nullable=True)
    encrypted_data = db.Column(db.Text, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="pending",
        comment="pending | approved | rejected",
    )
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "name": self.name,
            "file_path": self.file_path,
            "url": self.url,
            "has_encrypted_data": bool(self.encrypted_data),
            "version": self.version,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Resource {self.id}: {self.type} v{self.version} ({self.status})>"
