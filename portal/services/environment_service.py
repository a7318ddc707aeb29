"""Environment service — local / staging / production and their deployments.

Transaction policy: public functions call db.session.commit() on success.

Provides:
- Environment read / update
- Deploy (with the production UAT sign-off gate), rollback, mark failed
- Deployment history, latest deployment, per-environment readiness
- Go-live checklist and readiness; handover documents
"""
import logging
from typing import Any

from sqlalchemy import desc

from portal.core.clock import now
from portal.core.exceptions import NotFoundError, RejectedError, ValidationError
from portal.models import db
from portal.models.bug import INACTIVE_BUG_STATUSES, BugReport
from portal.models.environment import DEPLOYMENT_STATUSES, DeploymentRecord, Environment
from portal.models.project import Project
from portal.models.uat import Signoff
from portal.stores import bug_store, deployment_store, environment_store, signoff_store
from portal.utils.helpers import commit_session, parse_int, validate_enum, validate_length

logger = logging.getLogger(__name__)


def _require_project(project_id: int) -> None:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)


def get_environment(environment_id: int) -> Environment:
    environment = environment_store.get(environment_id)
    if environment is None:
        raise NotFoundError(resource="Environment", resource_id=environment_id)
    return environment


def list_environments(project_id: int) -> list[Environment]:
    _require_project(project_id)
    return environment_store.find_all_by_project_id(project_id)


def update_environment(environment_id: int, data: dict[str, Any]) -> Environment:
    """Update the URL and/or SSL flag of an environment."""
    environment = get_environment(environment_id)
    partial = {}
    if "url" in data:
        validate_length(data["url"], 500, "url")
        partial["url"] = data["url"] or None
    if "ssl_enabled" in data:
        partial["ssl_enabled"] = bool(data["ssl_enabled"])
    environment_store.update(environment_id, partial)
    commit_session("update environment")
    return environment


# ═════════════════════════════════════════════════════════════════════════════
# Deployments
# ═════════════════════════════════════════════════════════════════════════════


def validate_deployment_input(data: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for a deployment payload."""
    errors: list[str] = []
    warnings: list[str] = []
    if not data.get("environment_id"):
        errors.append("environment_id is required")
    if not str(data.get("version") or "").strip():
        errors.append("version is required")
    if not data.get("deployed_by"):
        errors.append("deployed_by is required")
    if not data.get("commit_hash"):
        warnings.append("Commit hash is recommended for traceability")
    if not data.get("notes"):
        warnings.append("Deployment notes are recommended")
    return errors, warnings


def has_uat_signoff(project_id: int) -> bool:
    return bool(signoff_store.count_where(project_id, Signoff.signoff_type == "uat"))


def has_open_critical_bugs(project_id: int) -> bool:
    return bool(bug_store.count_where(
        project_id,
        BugReport.severity == "critical",
        BugReport.status.notin_(sorted(INACTIVE_BUG_STATUSES)),
    ))


def _record_deployment(environment: Environment, **fields) -> DeploymentRecord:
    deployed_at = now()
    deployment = deployment_store.create(
        environment_id=environment.id,
        deployed_at=deployed_at,
        **fields,
    )
    environment_store.update(environment.id, {
        "current_version": deployment.version,
        "last_deployed_at": deployed_at,
        "last_deployed_by": deployment.deployed_by,
    })
    return deployment


def deploy(project_id: int, data: dict[str, Any]) -> tuple[DeploymentRecord, list[str]]:
    """Record a deployment and move the environment to the deployed version.

    Production requires a UAT sign-off.  Returns the record and advisory
    warnings (missing commit hash / notes, open critical bugs).

    Raises:
        ValidationError: Missing fields, bad status, environment of another project.
        RejectedError: Production deployment without UAT sign-off.
    """
    errors, warnings = validate_deployment_input(data)
    if errors:
        raise ValidationError("; ".join(errors), details={"errors": errors})
    status = data.get("status", "success")
    validate_enum(status, DEPLOYMENT_STATUSES, "status")

    environment = get_environment(parse_int(data["environment_id"], "environment_id"))
    if environment.project_id != project_id:
        raise ValidationError(
            "Environment does not belong to this project",
            details={"environment_id": environment.id},
        )

    if environment.env_type == "production":
        if not has_uat_signoff(project_id):
            raise RejectedError(
                "Production deployment blocked",
                reasons=["UAT sign-off is required before Production deployment"],
            )
        if has_open_critical_bugs(project_id):
            warnings.append("There are unresolved critical bugs")

    deployment = _record_deployment(
        environment,
        version=str(data["version"]).strip(),
        deployed_by=str(data["deployed_by"]),
        commit_hash=data.get("commit_hash"),
        notes=data.get("notes"),
        status=status,
    )
    commit_session("deploy")
    logger.info("Deployed %s to %s project=%s", deployment.version, environment.env_type, project_id,
                extra={"project_id": project_id, "actor": deployment.deployed_by,
                       "event_type": "deployment.create"})
    return deployment, warnings


def rollback(environment_id: int, deployment_id: int, user_id: str) -> DeploymentRecord:
    """Redeploy an earlier version as a new ``rollback`` record."""
    environment = get_environment(environment_id)
    target = deployment_store.get(deployment_id)
    if target is None:
        raise NotFoundError(resource="DeploymentRecord", resource_id=deployment_id)
    if target.environment_id != environment_id:
        raise ValidationError(
            "Deployment does not belong to this environment",
            details={"deployment_id": deployment_id},
        )

    deployment = _record_deployment(
        environment,
        version=target.version,
        deployed_by=str(user_id),
        commit_hash=target.commit_hash,
        notes=f"Rollback to version {target.version}",
        status="rollback",
    )
    commit_session("rollback deployment")
    logger.info("Rolled back %s to %s project=%s", environment.env_type, target.version,
                environment.project_id,
                extra={"project_id": environment.project_id, "actor": user_id,
                       "event_type": "deployment.rollback"})
    return deployment


def mark_deployment_failed(deployment_id: int) -> DeploymentRecord:
    deployment = deployment_store.update(deployment_id, {"status": "failed"})
    if deployment is None:
        raise NotFoundError(resource="DeploymentRecord", resource_id=deployment_id)
    commit_session("mark deployment failed")
    return deployment


def get_deployment_history(environment_id: int) -> list[DeploymentRecord]:
    """Deployments of an environment, newest first."""
    environment = get_environment(environment_id)
    return deployment_store.find_where(
        environment.project_id,
        DeploymentRecord.environment_id == environment_id,
        order_by=(desc(DeploymentRecord.deployed_at), desc(DeploymentRecord.id)),
    )


def get_latest_deployment(environment_id: int) -> DeploymentRecord | None:
    environment = get_environment(environment_id)
    return deployment_store.first_where(
        environment.project_id,
        DeploymentRecord.environment_id == environment_id,
        order_by=(desc(DeploymentRecord.deployed_at), desc(DeploymentRecord.id)),
    )


def get_deployment_readiness(project_id: int) -> dict:
    """Per-environment readiness; only production has blockers."""
    _require_project(project_id)
    readiness = {
        env_type: {"ready": True, "blockers": []}
        for env_type in ("local", "staging", "production")
    }
    production = readiness["production"]
    if not has_uat_signoff(project_id):
        production["ready"] = False
        production["blockers"].append("UAT sign-off required")
    if has_open_critical_bugs(project_id):
        production["blockers"].append("Unresolved critical bugs exist")
    return readiness


# ═════════════════════════════════════════════════════════════════════════════
# Go-live
# ═════════════════════════════════════════════════════════════════════════════

# Unfinished testing or security items block go-live; infrastructure items do not
GO_LIVE_BLOCKING_CATEGORIES = frozenset({"testing", "security"})

HANDOVER_DOCUMENTS = (
    {"type": "technical", "name": "Technical Documentation",
     "description": "System architecture and API documentation", "available": True},
    {"type": "user", "name": "User Manual",
     "description": "End-user guide and tutorials", "available": False},
    {"type": "admin", "name": "Admin Guide",
     "description": "Administration and configuration guide", "available": False},
    {"type": "deployment", "name": "Deployment Guide",
     "description": "Deployment procedures and rollback instructions", "available": True},
    {"type": "credentials", "name": "Credentials Document",
     "description": "Access credentials and API keys", "available": False},
    {"type": "warranty", "name": "Warranty Information",
     "description": "Support period and contact information", "available": True},
)


def _production(project_id: int) -> Environment | None:
    return environment_store.first_where(project_id, Environment.env_type == "production")


def generate_go_live_checklist(project_id: int) -> list[dict]:
    """Go-live checklist derived from sign-offs, bugs and the production environment."""
    _require_project(project_id)
    production = _production(project_id)
    checks = (
        ("uat_signoff", "UAT Sign-off", "Client has approved UAT", "testing",
         has_uat_signoff(project_id)),
        ("no_critical_bugs", "No Critical Bugs", "All critical bugs resolved", "testing",
         not has_open_critical_bugs(project_id)),
        ("ssl_certificate", "SSL Certificate", "SSL enabled for production", "security",
         bool(production and production.ssl_enabled)),
        ("domain_configuration", "Domain Configuration", "Production domain configured",
         "infrastructure", bool(production and production.url)),
    )
    return [
        {"key": key, "name": name, "description": description,
         "category": category, "is_completed": done}
        for key, name, description, category, done in checks
    ]


def is_ready_for_go_live(project_id: int) -> dict:
    """Ready when no testing or security item is open."""
    checklist = generate_go_live_checklist(project_id)
    blockers = [
        item["name"] for item in checklist
        if not item["is_completed"] and item["category"] in GO_LIVE_BLOCKING_CATEGORIES
    ]
    return {
        "ready": not blockers,
        "blockers": blockers,
        "completed_items": sum(1 for item in checklist if item["is_completed"]),
        "total_items": len(checklist),
    }


def list_handover_documents(project_id: int) -> list[dict]:
    _require_project(project_id)
    return [dict(document) for document in HANDOVER_DOCUMENTS]
