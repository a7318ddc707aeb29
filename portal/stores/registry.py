"""
Registry of project-dependent tables.

Every table whose rows are owned by a project is listed here exactly once.
``project_deletion.delete_project`` walks the list in order, so children come
before the rows they reference: task children before tasks, tasks before
columns, deployments before environments, design reviews before
resources.  Bug reports precede tasks because
``bug_reports.task_id`` is ``SET NULL`` and would otherwise be rewritten
row by row.

A new owned entity kind is added by appending its store here; the coordinator
and the residual scan pick it up without further changes.
"""

from portal.stores import (
    bug_store,
    checklist_store,
    deployment_store,
    design_review_store,
    environment_store,
    feedback_store,
    phase_store,
    resource_store,
    signoff_store,
    task_column_store,
    task_comment_store,
    task_dependency_store,
    task_store,
    task_tag_store,
    tech_stack_store,
)
from portal.stores.base import DependentRegistration

PROJECT_DEPENDENTS: list[DependentRegistration] = [
    task_tag_store.as_dependent(),
    checklist_store.as_dependent(),
    task_comment_store.as_dependent(),
    task_dependency_store.as_dependent(),
    bug_store.as_dependent(),
    task_store.as_dependent(),
    task_column_store.as_dependent(),
    deployment_store.as_dependent(),
    environment_store.as_dependent(),
    design_review_store.as_dependent(),
    resource_store.as_dependent(),
    tech_stack_store.as_dependent(),
    feedback_store.as_dependent(),
    signoff_store.as_dependent(),
    phase_store.as_dependent(),
]


def register_dependent(registration: DependentRegistration) -> None:
    """Append a dependent table. Duplicate table names are refused."""
    if any(r.table_name == registration.table_name for r in PROJECT_DEPENDENTS):
        raise ValueError(f"dependent table already registered: {registration.table_name}")
    PROJECT_DEPENDENTS.append(registration)


def registered_tables() -> list[str]:
    return [r.table_name for r in PROJECT_DEPENDENTS]
