"""
Phase Requirement Registry

Readiness conditions a project must satisfy before it may enter a phase,
one evaluator per requirement code.

Every evaluator is a read-only check over the project's entity graph:
"not met" is a normal result carrying a human-readable detail, never an
exception.  Store failures propagate as ``TransientStoreError``.

Usage:
    from portal.services.phase_requirements import evaluate_requirements

    checks = evaluate_requirements(project_id, "technical_planning")
    missing = [c.details for c in checks if not c.satisfied]

New requirement codes are added with ``register_evaluator``; the phase
table only names codes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app, has_app_context
from sqlalchemy import desc

from portal.models.bug import INACTIVE_BUG_STATUSES, BugReport
from portal.models.environment import DeploymentRecord, Environment
from portal.models.resource import DESIGN_RESOURCE_TYPES, Resource
from portal.models.uat import Signoff, UATFeedback
from portal.stores import (
    bug_store,
    checklist_store,
    deployment_store,
    environment_store,
    feedback_store,
    resource_store,
    signoff_store,
    task_column_store,
    task_store,
    tech_stack_store,
)

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Result & evaluator interface
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RequirementCheck:
    """Outcome of evaluating one requirement for one project."""
    requirement: str
    satisfied: bool
    details: str | None = None
    is_stub: bool = False

    def to_dict(self) -> dict:
        return {
            "requirement": self.requirement,
            "satisfied": self.satisfied,
            "details": self.details,
            "is_stub": self.is_stub,
        }


class RequirementEvaluator:
    """Evaluates a single requirement code against a project."""

    code: str = ""

    def evaluate(self, project_id: int) -> RequirementCheck:
        raise NotImplementedError

    def _met(self) -> RequirementCheck:
        return RequirementCheck(requirement=self.code, satisfied=True)

    def _unmet(self, details: str) -> RequirementCheck:
        return RequirementCheck(requirement=self.code, satisfied=False, details=details)


# ═════════════════════════════════════════════════════════════════════════════
# Evaluators
# ═════════════════════════════════════════════════════════════════════════════

class ApprovedResourceEvaluator(RequirementEvaluator):
    """At least one resource of the given types is approved."""

    def __init__(self, code: str, resource_types, unmet_detail: str, store=resource_store):
        self.code = code
        self.resource_types = tuple(sorted(resource_types))
        self.unmet_detail = unmet_detail
        self.store = store

    def evaluate(self, project_id: int) -> RequirementCheck:
        approved = self.store.count_where(
            project_id,
            Resource.type.in_(self.resource_types),
            Resource.status == "approved",
        )
        return self._met() if approved else self._unmet(self.unmet_detail)


class TechStackSelectedEvaluator(RequirementEvaluator):
    code = "TECH_STACK_SELECTED"

    def __init__(self, store=tech_stack_store):
        self.store = store

    def evaluate(self, project_id: int) -> RequirementCheck:
        if self.store.count_by_project_id(project_id):
            return self._met()
        return self._unmet("tech stack not selected")


class StagingDeployedEvaluator(RequirementEvaluator):
    """Staging has a URL and a version, and its newest deployment succeeded."""

    code = "STAGING_DEPLOYED"

    def __init__(self, environments=environment_store, deployments=deployment_store):
        self.environments = environments
        self.deployments = deployments

    def evaluate(self, project_id: int) -> RequirementCheck:
        staging = self.environments.first_where(project_id, Environment.env_type == "staging")
        if staging is None or not staging.url or not staging.current_version:
            return self._unmet("staging not deployed")

        latest = self.deployments.first_where(
            project_id,
            DeploymentRecord.environment_id == staging.id,
            order_by=(desc(DeploymentRecord.deployed_at), desc(DeploymentRecord.id)),
        )
        if latest is None or latest.status != "success":
            return self._unmet("staging not deployed")
        return self._met()


class DevTasksCompleteEvaluator(RequirementEvaluator):
    """Every task sits in the terminal column, or every task's checklist is done.

    A task without checklist items counts as checklist-complete; a project
    without tasks satisfies the requirement.  The unmet count is the number
    of tasks outside the terminal column.
    """

    code = "ALL_DEV_TASKS_COMPLETE"

    def __init__(self, tasks=task_store, columns=task_column_store, checklist=checklist_store):
        self.tasks = tasks
        self.columns = columns
        self.checklist = checklist

    def evaluate(self, project_id: int) -> RequirementCheck:
        tasks = self.tasks.find_all_by_project_id(project_id)
        if not tasks:
            return self._met()

        terminal_ids = {c.id for c in self.columns.find_all_by_project_id(project_id) if c.is_terminal}
        outside_done = [t for t in tasks if t.column_id not in terminal_ids]
        if not outside_done:
            return self._met()

        open_items_by_task: dict[int, int] = {}
        for item in self.checklist.find_all_by_project_id(project_id):
            if not item.is_completed:
                open_items_by_task[item.task_id] = open_items_by_task.get(item.task_id, 0) + 1
        if not any(open_items_by_task.get(t.id) for t in tasks):
            return self._met()

        return self._unmet(f"{len(outside_done)} dev task(s) incomplete")


class NoCriticalBugsEvaluator(RequirementEvaluator):
    code = "NO_CRITICAL_BUGS"

    def __init__(self, store=bug_store):
        self.store = store

    def evaluate(self, project_id: int) -> RequirementCheck:
        open_critical = self.store.count_where(
            project_id,
            BugReport.severity == "critical",
            BugReport.status.notin_(sorted(INACTIVE_BUG_STATUSES)),
        )
        if open_critical:
            return self._unmet(f"{open_critical} critical bug(s) unresolved")
        return self._met()


class UatSignoffEvaluator(RequirementEvaluator):
    """A ``uat`` sign-off has been recorded."""

    code = "UAT_SIGNOFF"

    def __init__(self, store=signoff_store):
        self.store = store

    def evaluate(self, project_id: int) -> RequirementCheck:
        if self.store.count_where(project_id, Signoff.signoff_type == "uat"):
            return self._met()
        return self._unmet("UAT signoff missing")


class FeedbackAddressedEvaluator(RequirementEvaluator):
    """No UAT feedback is still pending."""

    code = "ALL_FEEDBACK_ADDRESSED"

    def __init__(self, store=feedback_store):
        self.store = store

    def evaluate(self, project_id: int) -> RequirementCheck:
        pending = self.store.count_where(project_id, UATFeedback.status == "pending")
        if pending:
            return self._unmet(f"{pending} feedback item(s) still pending")
        return self._met()


# ── Placeholders ─────────────────────────────────────────────────────────────


class StubEvaluator(RequirementEvaluator):
    """Requirement with no backing check yet: always satisfied, flagged as stub."""

    def evaluate(self, project_id: int) -> RequirementCheck:
        return RequirementCheck(
            requirement=self.code,
            satisfied=True,
            details=f"stub: {self.code} not yet enforced",
            is_stub=True,
        )


class ChecklistCompleteStub(StubEvaluator):
    code = "TEST_CHECKLIST_COMPLETE"


class UatSignoffStub(StubEvaluator):
    code = "UAT_SIGNOFF"


class FeedbackAddressedStub(StubEvaluator):
    code = "ALL_FEEDBACK_ADDRESSED"


class UnknownRequirementEvaluator(RequirementEvaluator):
    """Stands in for a code the phase table names but nobody registered."""

    def __init__(self, code: str):
        self.code = code

    def evaluate(self, project_id: int) -> RequirementCheck:
        return self._unmet(f"Unknown requirement: {self.code}")


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════

EVALUATOR_REGISTRY: dict[str, RequirementEvaluator] = {}

# Replace the UAT stubs when PHASE_GATE_ENFORCE_UAT is on
ENFORCED_UAT_EVALUATORS: dict[str, RequirementEvaluator] = {
    "UAT_SIGNOFF": UatSignoffEvaluator(),
    "ALL_FEEDBACK_ADDRESSED": FeedbackAddressedEvaluator(),
}


def register_evaluator(evaluator: RequirementEvaluator) -> RequirementEvaluator:
    """Register (or replace) the evaluator for ``evaluator.code``."""
    if not evaluator.code:
        raise ValueError("evaluator has no requirement code")
    EVALUATOR_REGISTRY[evaluator.code] = evaluator
    return evaluator


for _evaluator in (
    ApprovedResourceEvaluator("SITEMAP_SRS", {"sitemap", "srs"}, "SITEMAP/SRS not approved"),
    ApprovedResourceEvaluator("SITEMAP", {"sitemap"}, "SITEMAP not approved"),
    ApprovedResourceEvaluator("SRS", {"srs"}, "SRS not approved"),
    # The approved SRS stands in for the schema and API documents it contains
    ApprovedResourceEvaluator("DB_SCHEMA_APPROVED", {"srs"}, "DB schema not approved"),
    ApprovedResourceEvaluator("API_DOC_APPROVED", {"srs"}, "API doc not approved"),
    ApprovedResourceEvaluator("DESIGN_APPROVED", DESIGN_RESOURCE_TYPES, "no design approved"),
    TechStackSelectedEvaluator(),
    StagingDeployedEvaluator(),
    DevTasksCompleteEvaluator(),
    NoCriticalBugsEvaluator(),
    ChecklistCompleteStub(),
    UatSignoffStub(),
    FeedbackAddressedStub(),
):
    register_evaluator(_evaluator)


# Requirements to ENTER each phase
PHASE_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    "kickoff": (),
    "technical_planning": ("SITEMAP_SRS", "TECH_STACK_SELECTED"),
    "development": ("DB_SCHEMA_APPROVED", "API_DOC_APPROVED", "DESIGN_APPROVED"),
    "internal_testing": ("STAGING_DEPLOYED", "ALL_DEV_TASKS_COMPLETE"),
    "uat": ("NO_CRITICAL_BUGS", "TEST_CHECKLIST_COMPLETE"),
    "go_live": ("UAT_SIGNOFF", "ALL_FEEDBACK_ADDRESSED"),
}


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════

def _enforce_uat() -> bool:
    return has_app_context() and bool(current_app.config.get("PHASE_GATE_ENFORCE_UAT"))


def get_evaluator(code: str) -> RequirementEvaluator:
    """Resolve the evaluator for *code*; unknown codes get an always-unmet evaluator."""
    if _enforce_uat() and code in ENFORCED_UAT_EVALUATORS:
        return ENFORCED_UAT_EVALUATORS[code]
    evaluator = EVALUATOR_REGISTRY.get(code)
    if evaluator is None:
        logger.error("No evaluator registered for requirement %s", code,
                     extra={"event_type": "phase.unknown_requirement"})
        return UnknownRequirementEvaluator(code)
    return evaluator


def requirements_for(phase_type: str) -> tuple[str, ...]:
    return PHASE_REQUIREMENTS.get(phase_type, ())


def evaluate_requirements(project_id: int, target_phase: str) -> list[RequirementCheck]:
    """Evaluate every requirement to enter *target_phase*, in table order.

    Evaluators run sequentially on the request's session; each is an
    independent read.
    """
    return [get_evaluator(code).evaluate(project_id) for code in requirements_for(target_phase)]


def list_requirements() -> list[dict]:
    """Requirement codes per phase with each evaluator's one-line description."""
    rows = []
    for phase_type, codes in PHASE_REQUIREMENTS.items():
        for code in codes:
            evaluator = get_evaluator(code)
            rows.append({
                "phase": phase_type,
                "requirement": code,
                "is_stub": isinstance(evaluator, StubEvaluator),
                "description": (type(evaluator).__doc__ or "").strip().split("\n")[0],
            })
    return rows
