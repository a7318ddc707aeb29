"""Phase transition service — validate and advance a project's lifecycle phase.

Transaction policy: public write functions commit on success and roll back
on any failure; nothing is persisted for a rejected transition.

Provides:
- Phase order helpers (next / previous / valid transition)
- Requirement checking and transition validation
- Transition execution under the per-project mutex
- Progress, block / unblock, display metadata

Phase order (fixed, no skipping, no rollback):
    kickoff → technical_planning → development → internal_testing → uat → go_live
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from portal.core.clock import now
from portal.core.exceptions import (
    DataIntegrityError,
    NoActivePhaseError,
    NotFoundError,
    RejectedError,
    TransientStoreError,
    ValidationError,
)
from portal.core.locks import project_mutex
from portal.models import db
from portal.models.audit import write_audit
from portal.models.project import PHASE_ORDER, Phase, Project
from portal.services.phase_requirements import RequirementCheck, evaluate_requirements
from portal.stores import phase_store
from portal.utils.helpers import commit_session

logger = logging.getLogger(__name__)

FINAL_PHASE_MESSAGE = "already at final phase"

PHASE_DISPLAY_INFO: dict[str, dict[str, str]] = {
    "kickoff": {
        "name": "Kickoff",
        "description": "Project kickoff, sitemap and SRS collection.",
        "color": "blue",
    },
    "technical_planning": {
        "name": "Technical Planning",
        "description": "Database schema, API documentation and design approval.",
        "color": "purple",
    },
    "development": {
        "name": "Development",
        "description": "Implementation against the approved design and documents.",
        "color": "yellow",
    },
    "internal_testing": {
        "name": "Internal Testing",
        "description": "QA on staging, bug fixing and test checklist.",
        "color": "orange",
    },
    "uat": {
        "name": "UAT",
        "description": "User acceptance testing with the client, feedback and sign-off.",
        "color": "pink",
    },
    "go_live": {
        "name": "Go Live",
        "description": "Production deployment and handover.",
        "color": "green",
    },
}


# ── Results ──────────────────────────────────────────────────────────────


@dataclass
class TransitionValidation:
    """Whether the current phase may advance, and why not."""
    can_transition: bool
    missing_requirements: list[str] = field(default_factory=list)
    current_phase: str | None = None
    next_phase: str | None = None
    checks: list[RequirementCheck] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "can_transition": self.can_transition,
            "missing_requirements": list(self.missing_requirements),
            "current_phase": self.current_phase,
            "next_phase": self.next_phase,
            "checks": [c.to_dict() for c in self.checks],
        }


@dataclass
class TransitionResult:
    success: bool
    missing_requirements: list[str] = field(default_factory=list)
    completed: Phase | None = None
    started: Phase | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "missing_requirements": list(self.missing_requirements),
            "completed_phase": self.completed.to_dict() if self.completed else None,
            "started_phase": self.started.to_dict() if self.started else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Phase order
# ═════════════════════════════════════════════════════════════════════════════


def next_phase(current: str | None) -> str | None:
    """The phase directly after *current*; None at go_live or for unknown values."""
    if current not in PHASE_ORDER:
        return None
    index = PHASE_ORDER.index(current)
    return PHASE_ORDER[index + 1] if index + 1 < len(PHASE_ORDER) else None


def previous_phase(current: str | None) -> str | None:
    if current not in PHASE_ORDER:
        return None
    index = PHASE_ORDER.index(current)
    return PHASE_ORDER[index - 1] if index > 0 else None


def is_valid_transition(from_phase: str | None, to_phase: str | None) -> bool:
    """True only for a single step forward along PHASE_ORDER."""
    if from_phase not in PHASE_ORDER or to_phase not in PHASE_ORDER:
        return False
    return PHASE_ORDER.index(to_phase) == PHASE_ORDER.index(from_phase) + 1


def get_phase_display_info(phase_type: str) -> dict | None:
    """Name, description and color of a phase type (None if unknown)."""
    info = PHASE_DISPLAY_INFO.get(phase_type)
    if info is None:
        return None
    return {"phase_type": phase_type, "position": PHASE_ORDER.index(phase_type), **info}


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def _get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def _get_phase(phase_id: int) -> Phase:
    phase = phase_store.get(phase_id)
    if phase is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id)
    return phase


def list_phases(project_id: int) -> list[Phase]:
    _get_project(project_id)
    return phase_store.find_where(project_id, order_by=(Phase.position,))


def get_current_phase(project_id: int) -> Phase:
    """The project's in-progress (or blocked) phase.

    Raises:
        NoActivePhaseError: The project has no current phase.
        DataIntegrityError: More than one phase claims to be current.
    """
    current = phase_store.find_where(
        project_id,
        Phase.status.in_(("in_progress", "blocked")),
        order_by=(Phase.position,),
    )
    if not current:
        logger.error("Project %s has no active phase", project_id,
                     extra={"project_id": project_id, "event_type": "phase.integrity"})
        raise NoActivePhaseError(project_id)
    if len(current) > 1:
        logger.error("Project %s has %d active phases", project_id, len(current),
                     extra={"project_id": project_id, "event_type": "phase.integrity"})
        raise DataIntegrityError(
            f"Project id={project_id} has more than one active phase",
            project_id=project_id,
            details={"phases": [p.phase_type for p in current]},
        )
    return current[0]


def check_phase_requirements(project_id: int, target_phase: str) -> list[RequirementCheck]:
    """Evaluate every requirement to enter *target_phase*."""
    return evaluate_requirements(project_id, target_phase)


def get_phase_progress(project_id: int) -> dict:
    """Completed-phase count and percentage for a project."""
    phases = list_phases(project_id)
    completed = sum(1 for p in phases if p.status == "completed")
    current = next((p for p in phases if p.status in ("in_progress", "blocked")), None)
    total = len(phases)
    return {
        "total": total,
        "completed": completed,
        "current": current.phase_type if current else None,
        "percent": round(completed / total * 100) if total else 0,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Validation & execution
# ═════════════════════════════════════════════════════════════════════════════


def validate_transition(project_id: int) -> TransitionValidation:
    """Decide whether the project may advance to its next phase.

    Every requirement is evaluated and every unmet detail collected, so the
    caller sees the full list at once.  A blocked current phase adds
    ``phase blocked: <reason>``.

    Raises:
        NotFoundError: Unknown project.
        NoActivePhaseError: The project has no current phase.
    """
    _get_project(project_id)
    current = get_current_phase(project_id)

    target = next_phase(current.phase_type)
    if target is None:
        return TransitionValidation(
            can_transition=False,
            missing_requirements=[FINAL_PHASE_MESSAGE],
            current_phase=current.phase_type,
        )

    checks = check_phase_requirements(project_id, target)
    missing = [c.details for c in checks if not c.satisfied]
    if current.status == "blocked":
        missing.insert(0, f"phase blocked: {current.blocked_reason or 'no reason given'}")

    return TransitionValidation(
        can_transition=not missing,
        missing_requirements=missing,
        current_phase=current.phase_type,
        next_phase=target,
        checks=checks,
    )


def _verify_transition(project_id: int, completed: Phase, started: Phase) -> None:
    """Re-read both rows after flush; anything but (completed, in_progress) is a fault."""
    db.session.refresh(completed)
    db.session.refresh(started)
    active = phase_store.count_where(project_id, Phase.status.in_(("in_progress", "blocked")))
    if completed.status != "completed" or started.status != "in_progress" or active != 1:
        raise DataIntegrityError(
            "Phase transition left the timeline inconsistent",
            project_id=project_id,
            details={
                completed.phase_type: completed.status,
                started.phase_type: started.status,
                "active_phases": active,
            },
        )


def execute_transition(project_id: int, *, actor: str | None = None) -> TransitionResult:
    """Advance the project by exactly one phase if every requirement holds.

    Re-validates under the per-project mutex.  A rejection is returned, not
    raised, and writes nothing.

    Raises:
        NotFoundError / NoActivePhaseError: see ``validate_transition``.
        DataIntegrityError: Post-write verification failed (rolled back).
        TransientStoreError: A store read or write failed (rolled back).
    """
    with project_mutex(project_id):
        try:
            validation = validate_transition(project_id)
            if not validation.can_transition:
                db.session.rollback()
                logger.info(
                    "Phase transition rejected project=%s phase=%s missing=%s",
                    project_id, validation.current_phase, validation.missing_requirements,
                    extra={"project_id": project_id, "phase": validation.current_phase,
                           "actor": actor, "event_type": "phase.transition_rejected"},
                )
                return TransitionResult(
                    success=False,
                    missing_requirements=validation.missing_requirements,
                )

            project = _get_project(project_id)
            current = get_current_phase(project_id)
            successor = phase_store.first_where(project_id, Phase.phase_type == validation.next_phase)
            if successor is None or successor.status != "pending":
                raise DataIntegrityError(
                    f"Phase {validation.next_phase} is missing or not pending",
                    project_id=project_id,
                    details={"next_phase": validation.next_phase,
                             "status": successor.status if successor else None},
                )

            timestamp = now()
            current.status = "completed"
            current.completed_at = timestamp
            successor.status = "in_progress"
            successor.started_at = timestamp
            db.session.flush()

            completed_count = phase_store.count_where(project_id, Phase.status == "completed")
            project.progress = round(completed_count / len(PHASE_ORDER) * 100)

            write_audit(
                entity_type="phase",
                entity_id=successor.id,
                action="phase.transition",
                actor=actor,
                project_id=project_id,
                diff={"phase": {"old": current.phase_type, "new": successor.phase_type}},
                timestamp=timestamp,
            )

            _verify_transition(project_id, current, successor)
            # Every commit fault, constraint violations included, is a store failure here
            db.session.commit()
        except DataIntegrityError as exc:
            db.session.rollback()
            logger.error("Phase transition aborted project=%s: %s", project_id, exc,
                         extra={"project_id": project_id, "actor": actor,
                                "event_type": "phase.integrity"})
            raise
        except (NotFoundError, TransientStoreError):
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise TransientStoreError("execute phase transition", exc) from exc

    logger.info(
        "Phase transition project=%s %s -> %s",
        project_id, current.phase_type, successor.phase_type,
        extra={"project_id": project_id, "phase": successor.phase_type,
               "actor": actor, "event_type": "phase.transition"},
    )
    return TransitionResult(success=True, completed=current, started=successor)


# ═════════════════════════════════════════════════════════════════════════════
# Block / unblock
# ═════════════════════════════════════════════════════════════════════════════


def block_phase(phase_id: int, reason: str, *, actor: str | None = None) -> Phase:
    """Mark the current phase as blocked; the project cannot advance meanwhile.

    Raises:
        ValidationError: Empty reason.
        RejectedError: The phase is not in progress.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required", details={"reason": "required"})

    phase = _get_phase(phase_id)
    with project_mutex(phase.project_id):
        db.session.refresh(phase)
        if phase.status != "in_progress":
            db.session.rollback()
            raise RejectedError(
                "Only the in-progress phase can be blocked",
                reasons=[f"phase {phase.phase_type} is {phase.status}"],
            )
        phase.status = "blocked"
        phase.blocked_reason = reason
        write_audit(
            entity_type="phase",
            entity_id=phase.id,
            action="phase.block",
            actor=actor,
            project_id=phase.project_id,
            diff={"status": {"old": "in_progress", "new": "blocked"}, "reason": reason},
            timestamp=now(),
        )
        commit_session("block phase")

    logger.info("Phase blocked project=%s phase=%s", phase.project_id, phase.phase_type,
                extra={"project_id": phase.project_id, "phase": phase.phase_type,
                       "actor": actor, "event_type": "phase.block"})
    return phase


def unblock_phase(phase_id: int, *, actor: str | None = None) -> Phase:
    phase = _get_phase(phase_id)
    with project_mutex(phase.project_id):
        db.session.refresh(phase)
        if phase.status != "blocked":
            db.session.rollback()
            raise RejectedError(
                "Only a blocked phase can be unblocked",
                reasons=[f"phase {phase.phase_type} is {phase.status}"],
            )
        phase.status = "in_progress"
        phase.blocked_reason = None
        write_audit(
            entity_type="phase",
            entity_id=phase.id,
            action="phase.unblock",
            actor=actor,
            project_id=phase.project_id,
            diff={"status": {"old": "blocked", "new": "in_progress"}},
            timestamp=now(),
        )
        commit_session("unblock phase")

    logger.info("Phase unblocked project=%s phase=%s", phase.project_id, phase.phase_type,
                extra={"project_id": phase.project_id, "phase": phase.phase_type,
                       "actor": actor, "event_type": "phase.unblock"})
    return phase
