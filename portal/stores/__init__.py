"""
Entity stores — one instance per entity kind.

Usage:
    from portal.stores import resource_store, task_store

    resource_store.find_all_by_project_id(project_id)
"""

from portal.models.bug import BugReport
from portal.models.design_review import DesignReview
from portal.models.environment import DeploymentRecord, Environment
from portal.models.project import Phase
from portal.models.resource import Resource
from portal.models.task import (
    ChecklistItem,
    Task,
    TaskColumn,
    TaskComment,
    TaskDependency,
    TaskTag,
)
from portal.models.tech_stack import TechStackItem
from portal.models.uat import Signoff, UATFeedback
from portal.stores.base import DependentRegistration, OwnedStore, ProjectScopedStore

phase_store = ProjectScopedStore(Phase)
resource_store = ProjectScopedStore(Resource)
tech_stack_store = ProjectScopedStore(TechStackItem)
environment_store = ProjectScopedStore(Environment)
deployment_store = OwnedStore(DeploymentRecord, Environment, "environment_id")
task_column_store = ProjectScopedStore(TaskColumn)
task_store = ProjectScopedStore(Task)
task_tag_store = OwnedStore(TaskTag, Task, "task_id")
checklist_store = OwnedStore(ChecklistItem, Task, "task_id")
task_comment_store = OwnedStore(TaskComment, Task, "task_id")
task_dependency_store = OwnedStore(TaskDependency, Task, "task_id", "depends_on_task_id")
bug_store = ProjectScopedStore(BugReport)
feedback_store = ProjectScopedStore(UATFeedback)
signoff_store = ProjectScopedStore(Signoff)
design_review_store = ProjectScopedStore(DesignReview)

__all__ = [
    "DependentRegistration",
    "OwnedStore",
    "ProjectScopedStore",
    "bug_store",
    "checklist_store",
    "deployment_store",
    "design_review_store",
    "environment_store",
    "feedback_store",
    "phase_store",
    "resource_store",
    "signoff_store",
    "task_column_store",
    "task_comment_store",
    "task_dependency_store",
    "task_store",
    "task_tag_store",
    "tech_stack_store",
]
