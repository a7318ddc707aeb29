"""Project bootstrap and CRUD tests."""

import pytest

from portal.core.exceptions import ConflictError, NotFoundError, ValidationError
from portal.models.audit import AuditLog
from portal.models.environment import Environment
from portal.models.project import PHASE_ORDER
from portal.models.task import DEFAULT_COLUMNS, TaskColumn
from portal.services import project_service


def _naive(dt):
    return dt.replace(tzinfo=None) if dt is not None else None


class TestCreateProject:
    def test_bootstraps_phases_environments_and_board(self, fixed_clock):
        project = project_service.create_project({"name": "Intranet", "key": "intra"}, actor="pm-7")

        assert project.key == "INTRA"
        assert project.status == "planning"
        assert project.progress == 0
        phases = list(project.phases)
        assert [p.phase_type for p in phases] == list(PHASE_ORDER)
        assert [p.status for p in phases] == ["in_progress"] + ["pending"] * 5
        assert _naive(phases[0].started_at) == _naive(fixed_clock)
        envs = Environment.query.filter_by(project_id=project.id).order_by(Environment.id).all()
        assert [e.env_type for e in envs] == ["local", "staging", "production"]
        columns = TaskColumn.query.filter_by(project_id=project.id).order_by(TaskColumn.position).all()
        assert tuple(c.name for c in columns) == DEFAULT_COLUMNS
        assert AuditLog.query.filter_by(project_id=project.id, action="create").one().actor == "pm-7"

    def test_name_and_key_are_required(self):
        with pytest.raises(ValidationError):
            project_service.create_project({"key": "X"})
        with pytest.raises(ValidationError):
            project_service.create_project({"name": "X", "key": "  "})

    def test_duplicate_key(self, project):
        with pytest.raises(ConflictError):
            project_service.create_project({"name": "Other", "key": "web"})

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            project_service.create_project({"name": "X", "key": "X", "status": "archived"})


class TestReadUpdate:
    def test_get_unknown(self):
        with pytest.raises(NotFoundError):
            project_service.get_project(999)

    def test_list_filters_by_status(self, make_project):
        make_project(status="active")
        make_project()
        assert len(project_service.list_projects()) == 2
        assert [p.status for p in project_service.list_projects(status="active")] == ["active"]

    def test_update_records_changes(self, project):
        updated = project_service.update_project(
            project.id, {"name": "New Website", "start_date": "2026-04-01", "key": "IGNORED"}, actor="pm-7",
        )
        assert updated.name == "New Website"
        assert updated.start_date.isoformat() == "2026-04-01"
        assert updated.key == "WEB"
        log = AuditLog.query.filter_by(project_id=project.id, action="update").one()
        assert log.diff["name"] == {"old": "Corporate Website", "new": "New Website"}

    def test_noop_update_writes_no_audit(self, project):
        project_service.update_project(project.id, {"name": "Corporate Website"})
        assert AuditLog.query.filter_by(project_id=project.id, action="update").count() == 0

    def test_audit_listing_newest_first(self, project, lifecycle):
        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)
        from portal.services.phase_transition_service import execute_transition
        execute_transition(project.id)
        actions = [log.action for log in project_service.list_audit_logs(project.id)]
        assert actions[0] == "phase.transition"
        assert actions[-1] == "create"
