"""UAT service — client feedback and project sign-offs.

Transaction policy: public functions call db.session.commit() on success.

A ``uat`` sign-off is refused while any feedback is pending, and there is
at most one per project.  ``addressed_at`` is stamped when feedback becomes
addressed and cleared when it leaves that status.  Sign-off and feedback
writes of one project run under ``project_mutex``.
"""
import logging
from typing import Any

from portal.core.clock import now
from portal.core.exceptions import NotFoundError, RejectedError, ValidationError
from portal.core.locks import project_mutex
from portal.models import db
from portal.models.project import Project
from portal.models.uat import FEEDBACK_STATUSES, SIGNOFF_TYPES, Signoff, UATFeedback
from portal.stores import feedback_store, signoff_store
from portal.utils.helpers import commit_session, require_text, validate_enum

logger = logging.getLogger(__name__)


def _require_project(project_id: int) -> None:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)


# ── Feedback ─────────────────────────────────────────────────────────────


def list_feedback(project_id: int, *, status: str | None = None) -> list[UATFeedback]:
    _require_project(project_id)
    if status:
        return feedback_store.find_where(project_id, UATFeedback.status == status)
    return feedback_store.find_all_by_project_id(project_id)


def create_feedback(project_id: int, data: dict[str, Any]) -> UATFeedback:
    _require_project(project_id)
    feedback_text = require_text(data, "feedback_text")
    provided_by = require_text(data, "provided_by", max_len=200)
    with project_mutex(project_id):
        feedback = feedback_store.create(
            project_id=project_id,
            feature_name=data.get("feature_name"),
            page_url=data.get("page_url"),
            feedback_text=feedback_text,
            provided_by=provided_by,
            status="pending",
        )
        commit_session("create UAT feedback")
    return feedback


def update_feedback_status(feedback_id: int, status: str) -> UATFeedback:
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    validate_enum(status, FEEDBACK_STATUSES, "status")
    feedback = feedback_store.get(feedback_id)
    if feedback is None:
        raise NotFoundError(resource="UATFeedback", resource_id=feedback_id)

    with project_mutex(feedback.project_id):
        change = {"status": status}
        if status == "addressed":
            if feedback.status != "addressed" or feedback.addressed_at is None:
                change["addressed_at"] = now()
        else:
            change["addressed_at"] = None
        feedback_store.update(feedback_id, change)
        commit_session("update UAT feedback")
    return feedback


def pending_feedback_count(project_id: int) -> int:
    return feedback_store.count_where(project_id, UATFeedback.status == "pending")


# ── Sign-offs ────────────────────────────────────────────────────────────


def list_signoffs(project_id: int) -> list[Signoff]:
    _require_project(project_id)
    return signoff_store.find_all_by_project_id(project_id)


def has_signoff(project_id: int, signoff_type: str) -> bool:
    return bool(signoff_store.count_where(project_id, Signoff.signoff_type == signoff_type))


def can_create_uat_signoff(project_id: int) -> dict:
    """Whether a UAT sign-off may be recorded now, with the reason if not."""
    _require_project(project_id)
    pending = pending_feedback_count(project_id)
    if pending:
        return {
            "can_signoff": False,
            "reason": f"{pending} feedback item(s) still pending",
            "pending_feedback_count": pending,
        }
    if has_signoff(project_id, "uat"):
        return {
            "can_signoff": False,
            "reason": "UAT sign-off already exists",
            "pending_feedback_count": 0,
        }
    return {"can_signoff": True, "reason": None, "pending_feedback_count": 0}


def create_signoff(project_id: int, data: dict[str, Any], *, actor: str | None = None) -> Signoff:
    """Record a design / UAT / go-live sign-off.

    Raises:
        ValidationError: Missing approver name or unknown type.
        RejectedError: UAT sign-off with pending feedback, or a second one.
    """
    _require_project(project_id)
    signoff_type = require_text(data, "signoff_type")
    validate_enum(signoff_type, SIGNOFF_TYPES, "signoff_type")
    approver_name = require_text(data, "approver_name", max_len=200)

    with project_mutex(project_id):
        # Feedback writes hold the same lock, so the check stays true until commit
        if signoff_type == "uat":
            check = can_create_uat_signoff(project_id)
            if not check["can_signoff"]:
                raise RejectedError("Cannot create UAT sign-off", reasons=[check["reason"]])

        signoff = signoff_store.create(
            project_id=project_id,
            signoff_type=signoff_type,
            approver_name=approver_name,
            approver_email=data.get("approver_email"),
            signature_data=data.get("signature_data"),
            notes=data.get("notes"),
            signed_at=now(),
        )
        commit_session("create sign-off")
    logger.info("Sign-off recorded type=%s project=%s", signoff_type, project_id,
                extra={"project_id": project_id, "actor": actor, "event_type": "signoff.create"})
    return signoff


def get_uat_status(project_id: int) -> dict:
    feedback = list_feedback(project_id)
    pending = sum(1 for f in feedback if f.status == "pending")
    signed = has_signoff(project_id, "uat")
    return {
        "total_feedback": len(feedback),
        "pending_feedback": pending,
        "addressed_feedback": sum(1 for f in feedback if f.status == "addressed"),
        "has_uat_signoff": signed,
        "can_signoff": pending == 0 and not signed,
    }
