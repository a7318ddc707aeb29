"""
Intranet Portal — Project Lifecycle Engine
Environment models.

Models:
    - Environment: one of local / staging / production per project
    - DeploymentRecord: ordered deployment history of an environment
"""

from datetime import datetime, timezone

from portal.models import db

ENVIRONMENT_TYPES = ("local", "staging", "production")
DEPLOYMENT_STATUSES = ("success", "failed", "rollback")


class Environment(db.Model):
    __tablename__ = "project_environments"
    __table_args__ = (
        db.UniqueConstraint("project_id", "env_type", name="uq_environment_project_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    env_type = db.Column(db.String(20), nullable=False, comment="local | staging | production")
    url = db.Column(db.String(500), nullable=True)
    current_version = db.Column(db.String(50), nullable=True)
    ssl_enabled = db.Column(db.Boolean, nullable=False, default=False)
    last_deployed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_deployed_by = db.Column(db.String(100), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    deployments = db.relationship(
        "DeploymentRecord", backref="environment", lazy="dynamic",
        passive_deletes=True,
        order_by="DeploymentRecord.id",
    )

    def to_dict(self, include_history=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "env_type": self.env_type,
            "url": self.url,
            "current_version": self.current_version,
            "ssl_enabled": bool(self.ssl_enabled),
            "last_deployed_at": self.last_deployed_at.isoformat() if self.last_deployed_at else None,
            "last_deployed_by": self.last_deployed_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_history:
            result["deployment_history"] = [d.to_dict() for d in self.deployments]
        return result

    def __repr__(self):
        return f"<Environment {self.id}: {self.env_type}>"


class DeploymentRecord(db.Model):
    """A single deployment to an environment. Newest record wins."""

    __tablename__ = "deployment_history"

    id = db.Column(db.Integer, primary_key=True)
    environment_id = db.Column(
        db.Integer,
        db.ForeignKey("project_environments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version = db.Column(db.String(50), nullable=False)
    deployed_by = db.Column(db.String(100), nullable=False)
    deployed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    commit_hash = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="success",
        comment="success | failed | rollback",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "environment_id": self.environment_id,
            "version": self.version,
            "deployed_by": self.deployed_by,
            "deployed_at": self.deployed_at.isoformat() if self.deployed_at else None,
            "commit_hash": self.commit_hash,
            "notes": self.notes,
            "status": self.status,
        }

    def __repr__(self):
        return f"<DeploymentRecord {self.id}: {self.version} ({self.status})>"
