"""Phase transition validator and executor tests."""

import time

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from portal.core.exceptions import (
    DataIntegrityError,
    NoActivePhaseError,
    RejectedError,
    TransientStoreError,
    ValidationError,
)
from portal.core.locks import held_project_ids
from portal.models import db as _db
from portal.models.audit import AuditLog
from portal.models.bug import BugReport
from portal.models.project import PHASE_ORDER, Phase, Project
from portal.services import phase_transition_service as pts
from portal.services import project_service
from portal.stores import tech_stack_store


def _statuses(project_id):
    phases = Phase.query.filter_by(project_id=project_id).order_by(Phase.position).all()
    return [p.status for p in phases]


def _naive(dt):
    return dt.replace(tzinfo=None) if dt is not None else None


def _assert_timeline_ordered(project_id):
    """Completed prefix, exactly one current phase, pending suffix."""
    statuses = _statuses(project_id)
    current = [i for i, s in enumerate(statuses) if s in ("in_progress", "blocked")]
    assert len(current) == 1
    index = current[0]
    assert all(s == "completed" for s in statuses[:index])
    assert all(s == "pending" for s in statuses[index + 1:])


# ═════════════════════════════════════════════════════════════════
# 1. Phase order helpers
# ═════════════════════════════════════════════════════════════════
class TestPhaseOrder:
    def test_next_phase_walks_the_fixed_order(self):
        assert pts.next_phase("kickoff") == "technical_planning"
        assert pts.next_phase("uat") == "go_live"
        assert pts.next_phase("go_live") is None
        assert pts.next_phase("unknown") is None

    def test_previous_phase(self):
        assert pts.previous_phase("technical_planning") == "kickoff"
        assert pts.previous_phase("kickoff") is None

    @pytest.mark.parametrize("from_index", range(len(PHASE_ORDER)))
    def test_only_single_forward_steps_are_valid(self, from_index):
        for to_index, to_phase in enumerate(PHASE_ORDER):
            expected = to_index == from_index + 1
            assert pts.is_valid_transition(PHASE_ORDER[from_index], to_phase) is expected

    def test_unknown_phases_are_never_valid(self):
        assert pts.is_valid_transition("kickoff", "launch") is False
        assert pts.is_valid_transition(None, "kickoff") is False

    def test_display_info(self):
        info = pts.get_phase_display_info("uat")
        assert info["name"] == "UAT"
        assert info["color"] == "pink"
        assert info["position"] == 4
        assert pts.get_phase_display_info("launch") is None

    def test_display_info_covers_every_phase(self):
        colors = [pts.get_phase_display_info(p)["color"] for p in PHASE_ORDER]
        assert colors == ["blue", "purple", "yellow", "orange", "pink", "green"]


# ═════════════════════════════════════════════════════════════════
# 2. Validation
# ═════════════════════════════════════════════════════════════════
class TestValidateTransition:
    def test_fresh_project_reports_all_kickoff_gaps(self, project):
        validation = pts.validate_transition(project.id)
        assert validation.can_transition is False
        assert validation.current_phase == "kickoff"
        assert validation.next_phase == "technical_planning"
        assert validation.missing_requirements == ["SITEMAP/SRS not approved", "tech stack not selected"]

    def test_sitemap_alone_satisfies_the_combined_requirement(self, project, lifecycle):
        lifecycle.approved_resource(project.id, "sitemap", "sitemap.pdf")
        validation = pts.validate_transition(project.id)
        assert validation.missing_requirements == ["tech stack not selected"]

    def test_pending_resource_does_not_count(self, project):
        from portal.services.resource_service import create_resource

        create_resource(project.id, {"type": "srs", "name": "SRS", "file_path": "srs.pdf"})
        assert "SITEMAP/SRS not approved" in pts.validate_transition(project.id).missing_requirements

    def test_final_phase(self, project, lifecycle):
        lifecycle.advance_to(project.id, "go_live")
        validation = pts.validate_transition(project.id)
        assert validation.can_transition is False
        assert validation.missing_requirements == [pts.FINAL_PHASE_MESSAGE]
        assert validation.next_phase is None

    def test_blocked_phase_is_reported_first(self, project, lifecycle):
        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)
        kickoff = pts.get_current_phase(project.id)
        pts.block_phase(kickoff.id, "waiting on client")

        validation = pts.validate_transition(project.id)
        assert validation.can_transition is False
        assert validation.missing_requirements == ["phase blocked: waiting on client"]

    def test_critical_bugs_block_uat(self, project, lifecycle):
        lifecycle.advance_to(project.id, "internal_testing")
        for n in range(3):
            _db.session.add(BugReport(project_id=project.id, title=f"Crash {n}", severity="critical",
                                      status="open", environment="staging"))
        _db.session.add(BugReport(project_id=project.id, title="Old crash", severity="critical",
                                  status="resolved", environment="staging"))
        _db.session.add(BugReport(project_id=project.id, title="Typo", severity="low",
                                  status="open", environment="staging"))
        _db.session.commit()

        validation = pts.validate_transition(project.id)
        assert validation.missing_requirements == ["3 critical bug(s) unresolved"]

    def test_no_active_phase_is_an_integrity_error(self, project):
        Phase.query.filter_by(project_id=project.id).update({"status": "completed"})
        _db.session.commit()
        with pytest.raises(NoActivePhaseError):
            pts.validate_transition(project.id)

    def test_two_active_phases_is_an_integrity_error(self, project):
        Phase.query.filter_by(project_id=project.id, phase_type="uat").update({"status": "in_progress"})
        _db.session.commit()
        with pytest.raises(DataIntegrityError):
            pts.get_current_phase(project.id)


# ═════════════════════════════════════════════════════════════════
# 3. Execution
# ═════════════════════════════════════════════════════════════════
class TestExecuteTransition:
    def test_srs_and_tech_item_unlock_technical_planning(self, project, lifecycle, fixed_clock):
        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)

        result = pts.execute_transition(project.id, actor="pm-7")

        assert result.success is True
        assert result.completed.phase_type == "kickoff"
        assert result.started.phase_type == "technical_planning"
        assert _statuses(project.id) == ["completed", "in_progress", "pending", "pending", "pending", "pending"]
        kickoff = Phase.query.filter_by(project_id=project.id, phase_type="kickoff").one()
        planning = Phase.query.filter_by(project_id=project.id, phase_type="technical_planning").one()
        assert _naive(kickoff.completed_at) == _naive(fixed_clock)
        assert _naive(planning.started_at) == _naive(fixed_clock)
        assert _db.session.get(Project, project.id).progress == 17

    def test_transition_writes_audit_row(self, project, lifecycle):
        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)
        pts.execute_transition(project.id, actor="pm-7")

        log = AuditLog.query.filter_by(project_id=project.id, action="phase.transition").one()
        assert log.actor == "pm-7"
        assert log.diff == {"phase": {"old": "kickoff", "new": "technical_planning"}}

    def test_rejection_changes_nothing_and_is_repeatable(self, project):
        before = _statuses(project.id)
        audit_before = AuditLog.query.count()

        first = pts.execute_transition(project.id)
        second = pts.execute_transition(project.id)

        assert first.success is False
        assert first.missing_requirements == second.missing_requirements
        assert _statuses(project.id) == before
        assert AuditLog.query.count() == audit_before
        assert _db.session.get(Project, project.id).progress == 0

    def test_walk_through_every_phase(self, project, lifecycle):
        lifecycle.advance_to(project.id, "go_live")
        assert _statuses(project.id) == ["completed"] * 5 + ["in_progress"]
        assert _db.session.get(Project, project.id).progress == 83
        assert pts.get_phase_progress(project.id) == {
            "total": 6, "completed": 5, "current": "go_live", "percent": 83,
        }

    def test_timeline_stays_ordered_after_each_step(self, project, lifecycle):
        for target in PHASE_ORDER[1:]:
            lifecycle.advance_to(project.id, target)
            _assert_timeline_ordered(project.id)

    def test_execute_at_final_phase_is_rejected(self, project, lifecycle):
        lifecycle.advance_to(project.id, "go_live")
        result = pts.execute_transition(project.id)
        assert result.success is False
        assert result.missing_requirements == [pts.FINAL_PHASE_MESSAGE]

    def test_staging_must_have_a_successful_latest_deployment(self, project, lifecycle):
        lifecycle.advance_to(project.id, "development")
        lifecycle.staging_deployed(project.id, version="1.0.0")
        lifecycle.staging_deployed(project.id, version="1.1.0", status="failed")

        result = pts.execute_transition(project.id)
        assert result.success is False
        assert result.missing_requirements == ["staging not deployed"]

    def test_mutex_released_after_transition(self, project, lifecycle):
        pts.execute_transition(project.id)
        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)
        pts.execute_transition(project.id)
        assert project.id not in held_project_ids()


# ═════════════════════════════════════════════════════════════════
# 4. Block / unblock
# ═════════════════════════════════════════════════════════════════
class TestBlockPhase:
    def test_block_and_unblock(self, project, lifecycle):
        kickoff = pts.get_current_phase(project.id)
        blocked = pts.block_phase(kickoff.id, "client on holiday", actor="pm-7")
        assert blocked.status == "blocked"
        assert pts.get_current_phase(project.id).id == kickoff.id

        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)
        assert pts.execute_transition(project.id).success is False

        unblocked = pts.unblock_phase(kickoff.id)
        assert unblocked.status == "in_progress"
        assert unblocked.blocked_reason is None
        assert pts.execute_transition(project.id).success is True

    def test_block_requires_reason(self, project):
        kickoff = pts.get_current_phase(project.id)
        with pytest.raises(ValidationError):
            pts.block_phase(kickoff.id, "  ")

    def test_only_in_progress_phase_can_be_blocked(self, project):
        pending = Phase.query.filter_by(project_id=project.id, phase_type="uat").one()
        with pytest.raises(RejectedError) as exc_info:
            pts.block_phase(pending.id, "no")
        assert exc_info.value.reasons == ["phase uat is pending"]

    def test_unblock_requires_blocked_phase(self, project):
        kickoff = pts.get_current_phase(project.id)
        with pytest.raises(RejectedError):
            pts.unblock_phase(kickoff.id)


# ═════════════════════════════════════════════════════════════════
# 5. Store faults
# ═════════════════════════════════════════════════════════════════
def _operational_error(statement):
    return OperationalError(statement, {}, Exception("disk I/O error"))


class TestTransitionStoreFaults:
    def test_audit_write_failure_rolls_back_both_phases(self, project, lifecycle, monkeypatch):
        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)
        before = _statuses(project.id)

        def failing_audit(**kwargs):
            raise _operational_error("INSERT INTO audit_logs")

        monkeypatch.setattr(pts, "write_audit", failing_audit)

        with pytest.raises(TransientStoreError) as exc_info:
            pts.execute_transition(project.id, actor="pm-7")

        assert exc_info.value.operation == "execute phase transition"
        assert _statuses(project.id) == before
        assert _db.session.get(Project, project.id).progress == 0
        assert AuditLog.query.filter_by(action="phase.transition").count() == 0
        assert project.id not in held_project_ids()

    def test_evaluator_read_failure_is_transient(self, project, lifecycle, monkeypatch):
        lifecycle.approved_resource(project.id)

        def failing_query(project_id):
            raise _operational_error("SELECT count(*) FROM project_tech_stack")

        monkeypatch.setattr(tech_stack_store, "query_for_project", failing_query)

        with pytest.raises(TransientStoreError) as exc_info:
            pts.validate_transition(project.id)
        assert exc_info.value.operation == "project_tech_stack.count_by_project_id"

        with pytest.raises(TransientStoreError):
            pts.execute_transition(project.id)
        monkeypatch.undo()
        assert _statuses(project.id)[0] == "in_progress"

    def test_constraint_violation_on_commit_is_transient(self, project, lifecycle, monkeypatch):
        lifecycle.approved_resource(project.id)
        lifecycle.tech_item(project.id)
        before = _statuses(project.id)

        def conflicting_commit():
            raise IntegrityError("UPDATE project_phases", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(_db.session, "commit", conflicting_commit)

        with pytest.raises(TransientStoreError):
            pts.execute_transition(project.id)
        monkeypatch.undo()

        assert _statuses(project.id) == before
        assert AuditLog.query.filter_by(action="phase.transition").count() == 0


# ═════════════════════════════════════════════════════════════════
# 6. Concurrent transitions
# ═════════════════════════════════════════════════════════════════
class TestConcurrentTransition:
    def test_parallel_transitions_advance_one_phase(self, threaded_app, run_concurrently, lifecycle, monkeypatch):
        with threaded_app.app_context():
            pid = project_service.create_project({"name": "Launch", "key": "LAUNCH"}).id
            lifecycle.approved_resource(pid)
            lifecycle.tech_item(pid)
        checked = pts.check_phase_requirements

        def slow_check(project_id, target_phase):
            checks = checked(project_id, target_phase)
            time.sleep(0.2)
            return checks

        monkeypatch.setattr(pts, "check_phase_requirements", slow_check)

        def advance():
            return pts.execute_transition(pid, actor="pm-7").success

        results, errors = run_concurrently(threaded_app, advance, advance)

        assert errors == []
        assert sorted(results) == [False, True]
        with threaded_app.app_context():
            assert _statuses(pid)[:3] == ["completed", "in_progress", "pending"]
            assert AuditLog.query.filter_by(project_id=pid, action="phase.transition").count() == 1
            _assert_timeline_ordered(pid)
