"""Cascade deletion coordinator tests."""

import threading
import time

import pytest
from sqlalchemy.exc import OperationalError

from portal.core.exceptions import DataIntegrityError, NotFoundError, TransientStoreError
from portal.core.locks import held_project_ids
from portal.models import db as _db
from portal.models.audit import AuditLog
from portal.models.bug import BugReport
from portal.models.project import Phase, Project
from portal.services import (
    design_review_service,
    phase_transition_service,
    project_deletion,
    project_service,
    task_service,
    uat_service,
)
from portal.stores.base import DependentRegistration
from portal.stores.registry import PROJECT_DEPENDENTS, register_dependent, registered_tables


def _populate(project_id, lifecycle, *, tasks=5):
    """Rows in every dependent table of a project."""
    lifecycle.approved_resource(project_id)
    lifecycle.tech_item(project_id)
    lifecycle.staging_deployed(project_id)
    created = []
    for n in range(tasks):
        task = task_service.create_task(project_id, {"title": f"Task {n}"})
        task_service.add_checklist_item(task.id, "Write code")
        task_service.add_checklist_item(task.id, "Write tests")
        task_service.add_tag(task.id, "frontend")
        task_service.add_comment(task.id, "Looks good")
        created.append(task)
    if len(created) >= 2:
        task_service.add_dependency(created[1].id, created[0].id)
    for n in range(2):
        _db.session.add(BugReport(project_id=project_id, title=f"Bug {n}", severity="high",
                                  status="open", environment="staging",
                                  task_id=created[0].id if created else None))
    _db.session.commit()
    uat_service.create_feedback(project_id, {"feedback_text": "Change colour", "provided_by": "Client"})
    uat_service.create_signoff(project_id, {"signoff_type": "design", "approver_name": "Client"})
    wireframe = lifecycle.approved_resource(project_id, "wireframe", "home.png")
    design_review_service.create_review(project_id, wireframe.id)


class TestCascadeDelete:
    def test_every_registered_table_is_emptied(self, project, lifecycle):
        pid = project.id
        _populate(pid, lifecycle)
        before = project_deletion.count_dependents(pid)
        assert all(before[table] > 0 for table in registered_tables())

        report = project_deletion.delete_project(pid, actor="admin-1")

        assert project_deletion.residual_rows(pid) == {}
        assert _db.session.get(Project, pid) is None
        assert report.deleted_counts["projects"] == 1
        for table, count in before.items():
            assert report.deleted_counts[table] == count
        assert report.total_deleted == sum(before.values()) + 1

    def test_five_tasks_two_bugs_scenario(self, project, lifecycle):
        pid = project.id
        _populate(pid, lifecycle, tasks=5)
        report = project_deletion.delete_project(pid)

        assert report.deleted_counts["tasks"] == 5
        assert report.deleted_counts["checklist_items"] == 10
        assert report.deleted_counts["task_tags"] == 5
        assert report.deleted_counts["bug_reports"] == 2
        assert all(count == 0 for count in project_deletion.count_dependents(pid).values())

    def test_project_without_dependents(self, project):
        pid = project.id
        report = project_deletion.delete_project(pid)
        # Phases, environments and board columns are created with every project
        assert report.deleted_counts["project_phases"] == 6
        assert report.deleted_counts["project_environments"] == 3
        assert report.deleted_counts["task_columns"] == 5
        assert report.deleted_counts["tasks"] == 0

    def test_other_projects_are_untouched(self, make_project, lifecycle):
        doomed, survivor = make_project(), make_project()
        doomed_id, survivor_id = doomed.id, survivor.id
        _populate(doomed_id, lifecycle, tasks=2)
        _populate(survivor_id, lifecycle, tasks=3)
        survivor_counts = project_deletion.count_dependents(survivor_id)

        project_deletion.delete_project(doomed_id)

        assert project_deletion.count_dependents(survivor_id) == survivor_counts
        assert _db.session.get(Project, survivor_id) is not None

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            project_deletion.delete_project(424242)

    def test_audit_row_outlives_project(self, project):
        pid = project.id
        project_deletion.delete_project(pid, actor="admin-1")
        log = AuditLog.query.filter_by(project_id=pid, action="delete").one()
        assert log.actor == "admin-1"
        assert log.diff["deleted"]["project_phases"] == 6

    def test_residual_rows_roll_back_everything(self, project, lifecycle, monkeypatch):
        pid = project.id
        _populate(pid, lifecycle, tasks=1)
        before = project_deletion.count_dependents(pid)
        leaky = DependentRegistration(
            table_name="leaky_table",
            delete_by_project_id=lambda project_id: 0,
            count_by_project_id=lambda project_id: 1,
        )
        monkeypatch.setattr(project_deletion, "PROJECT_DEPENDENTS", [*PROJECT_DEPENDENTS, leaky])

        with pytest.raises(DataIntegrityError) as exc_info:
            project_deletion.delete_project(pid)

        assert exc_info.value.details["residual_rows"] == {"leaky_table": 1}
        monkeypatch.undo()
        assert _db.session.get(Project, pid) is not None
        assert project_deletion.count_dependents(pid) == before
        assert AuditLog.query.filter_by(project_id=pid, action="delete").count() == 0

    def test_store_failure_mid_cascade_keeps_every_row(self, project, lifecycle, monkeypatch):
        pid = project.id
        _populate(pid, lifecycle, tasks=2)
        before = project_deletion.count_dependents(pid)

        def failing_delete(project_id):
            raise OperationalError("DELETE FROM project_environments", {}, Exception("database is locked"))

        faulty = DependentRegistration(
            table_name="project_environments",
            delete_by_project_id=failing_delete,
            count_by_project_id=lambda project_id: 0,
        )
        # Tasks and deployments are already gone when the fault hits
        tables = registered_tables()
        cut = tables.index("project_environments")
        dependents = [*PROJECT_DEPENDENTS[:cut], faulty, *PROJECT_DEPENDENTS[cut + 1:]]
        monkeypatch.setattr(project_deletion, "PROJECT_DEPENDENTS", dependents)

        with pytest.raises(TransientStoreError):
            project_deletion.delete_project(pid, actor="admin-1")

        monkeypatch.undo()
        assert _db.session.get(Project, pid) is not None
        assert project_deletion.count_dependents(pid) == before
        assert AuditLog.query.filter_by(project_id=pid, action="delete").count() == 0
        assert pid not in held_project_ids()


class TestRegistry:
    def test_children_precede_parents(self):
        tables = registered_tables()
        assert tables.index("task_tags") < tables.index("tasks")
        assert tables.index("checklist_items") < tables.index("tasks")
        assert tables.index("task_dependencies") < tables.index("tasks")
        assert tables.index("bug_reports") < tables.index("tasks")
        assert tables.index("tasks") < tables.index("task_columns")
        assert tables.index("deployment_history") < tables.index("project_environments")
        assert tables.index("design_reviews") < tables.index("project_resources")

    def test_every_project_table_is_registered(self):
        owned = {
            t.name for t in _db.metadata.sorted_tables
            if t.name not in ("projects", "audit_logs")
        }
        assert owned == set(registered_tables())

    def test_duplicate_registration_is_refused(self):
        with pytest.raises(ValueError):
            register_dependent(DependentRegistration("tasks", lambda pid: 0, lambda pid: 0))


class TestConcurrentDelete:
    def test_delete_waits_for_transition_in_progress(self, threaded_app, run_concurrently, lifecycle, monkeypatch):
        with threaded_app.app_context():
            pid = project_service.create_project({"name": "Launch", "key": "LAUNCH"}).id
            lifecycle.approved_resource(pid)
            lifecycle.tech_item(pid)
        checked = phase_transition_service.check_phase_requirements
        validating = threading.Event()

        def slow_check(project_id, target_phase):
            checks = checked(project_id, target_phase)
            validating.set()
            time.sleep(0.2)
            return checks

        monkeypatch.setattr(phase_transition_service, "check_phase_requirements", slow_check)

        def advance():
            return "advanced" if phase_transition_service.execute_transition(pid).success else "rejected"

        def delete():
            assert validating.wait(timeout=5)
            return project_deletion.delete_project(pid).deleted_counts["project_phases"]

        results, errors = run_concurrently(threaded_app, advance, delete)

        assert errors == []
        assert sorted(results, key=str) == [6, "advanced"]
        with threaded_app.app_context():
            assert _db.session.get(Project, pid) is None
            assert Phase.query.filter_by(project_id=pid).count() == 0
            assert project_deletion.residual_rows(pid) == {}
            # The transition committed before the delete started
            assert AuditLog.query.filter_by(project_id=pid, action="phase.transition").count() == 1
