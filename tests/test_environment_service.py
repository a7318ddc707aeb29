"""Environment and deployment tests."""

import pytest

from portal.core.exceptions import NotFoundError, RejectedError, ValidationError
from portal.models.environment import Environment
from portal.services import bug_service, environment_service as es, uat_service


def _env(project_id, env_type):
    return Environment.query.filter_by(project_id=project_id, env_type=env_type).one()


def _sign_uat(project_id):
    uat_service.create_signoff(project_id, {"signoff_type": "uat", "approver_name": "Client"})


class TestDeploy:
    def test_deploy_updates_environment(self, project, fixed_clock):
        staging = _env(project.id, "staging")
        deployment, warnings = es.deploy(project.id, {
            "environment_id": staging.id, "version": "1.2.0", "deployed_by": "ci",
            "commit_hash": "abc123", "notes": "First staging build",
        })
        assert warnings == []
        assert deployment.status == "success"
        assert staging.current_version == "1.2.0"
        assert staging.last_deployed_by == "ci"

    def test_advisory_warnings(self, project):
        _, warnings = es.deploy(project.id, {
            "environment_id": _env(project.id, "local").id, "version": "0.1", "deployed_by": "dev",
        })
        assert warnings == ["Commit hash is recommended for traceability", "Deployment notes are recommended"]

    def test_missing_fields(self, project):
        with pytest.raises(ValidationError) as exc_info:
            es.deploy(project.id, {"version": " "})
        assert exc_info.value.details["errors"] == [
            "environment_id is required", "version is required", "deployed_by is required",
        ]

    def test_non_numeric_environment_id(self, project):
        with pytest.raises(ValidationError) as exc_info:
            es.deploy(project.id, {"environment_id": "abc", "version": "1", "deployed_by": "ci"})
        assert exc_info.value.details == {"environment_id": "abc"}

    def test_environment_of_another_project(self, project, make_project):
        other = make_project()
        with pytest.raises(ValidationError):
            es.deploy(project.id, {
                "environment_id": _env(other.id, "local").id, "version": "1", "deployed_by": "ci",
            })

    def test_production_requires_uat_signoff(self, project):
        production = _env(project.id, "production")
        with pytest.raises(RejectedError) as exc_info:
            es.deploy(project.id, {"environment_id": production.id, "version": "1.0", "deployed_by": "ci"})
        assert exc_info.value.reasons == ["UAT sign-off is required before Production deployment"]
        assert production.current_version is None

    def test_production_with_signoff_warns_on_critical_bugs(self, project):
        _sign_uat(project.id)
        bug_service.create_bug(project.id, {
            "title": "Checkout crash", "severity": "critical", "environment": "staging",
            "reproduction_steps": "Pay with card", "reported_by": 3,
        })
        _, warnings = es.deploy(project.id, {
            "environment_id": _env(project.id, "production").id, "version": "1.0",
            "deployed_by": "ci", "commit_hash": "f00", "notes": "Launch",
        })
        assert warnings == ["There are unresolved critical bugs"]


class TestHistoryAndRollback:
    def test_history_newest_first_and_rollback(self, project):
        staging = _env(project.id, "staging")
        first, _ = es.deploy(project.id, {"environment_id": staging.id, "version": "1.0", "deployed_by": "ci"})
        es.deploy(project.id, {"environment_id": staging.id, "version": "1.1", "deployed_by": "ci"})

        rollback = es.rollback(staging.id, first.id, "ops-2")
        assert rollback.status == "rollback"
        assert rollback.version == "1.0"
        assert rollback.notes == "Rollback to version 1.0"
        assert staging.current_version == "1.0"

        history = es.get_deployment_history(staging.id)
        assert [d.version for d in history] == ["1.0", "1.1", "1.0"]
        assert history[0].id == rollback.id
        assert es.get_latest_deployment(staging.id).id == rollback.id

    def test_rollback_to_foreign_deployment(self, project):
        staging, local = _env(project.id, "staging"), _env(project.id, "local")
        deployment, _ = es.deploy(project.id, {"environment_id": local.id, "version": "1", "deployed_by": "ci"})
        with pytest.raises(ValidationError):
            es.rollback(staging.id, deployment.id, "ops")

    def test_mark_failed(self, project):
        deployment, _ = es.deploy(project.id, {
            "environment_id": _env(project.id, "staging").id, "version": "2", "deployed_by": "ci",
        })
        assert es.mark_deployment_failed(deployment.id).status == "failed"


class TestReadiness:
    def test_production_blocked_without_signoff(self, project):
        readiness = es.get_deployment_readiness(project.id)
        assert readiness["staging"] == {"ready": True, "blockers": []}
        assert readiness["production"] == {"ready": False, "blockers": ["UAT sign-off required"]}

    def test_ready_after_signoff(self, project):
        _sign_uat(project.id)
        assert es.get_deployment_readiness(project.id)["production"] == {"ready": True, "blockers": []}

    def test_update_environment(self, project):
        env = es.update_environment(_env(project.id, "production").id,
                                    {"url": "https://www.example.com", "ssl_enabled": True})
        assert env.url == "https://www.example.com"
        assert env.ssl_enabled is True


class TestGoLive:
    def test_fresh_project_checklist(self, project):
        checklist = es.generate_go_live_checklist(project.id)
        assert [(i["key"], i["category"], i["is_completed"]) for i in checklist] == [
            ("uat_signoff", "testing", False),
            ("no_critical_bugs", "testing", True),
            ("ssl_certificate", "security", False),
            ("domain_configuration", "infrastructure", False),
        ]
        assert es.is_ready_for_go_live(project.id) == {
            "ready": False,
            "blockers": ["UAT Sign-off", "SSL Certificate"],
            "completed_items": 1,
            "total_items": 4,
        }

    def test_critical_bug_blocks_go_live(self, project):
        _sign_uat(project.id)
        es.update_environment(_env(project.id, "production").id, {"ssl_enabled": True})
        bug = bug_service.create_bug(project.id, {
            "title": "Checkout crash", "severity": "critical", "environment": "production",
            "reproduction_steps": "Pay with card", "reported_by": 3,
        })
        assert es.is_ready_for_go_live(project.id)["blockers"] == ["No Critical Bugs"]

        bug_service.update_bug_status(bug.id, "resolved")
        assert es.is_ready_for_go_live(project.id)["ready"] is True

    def test_domain_is_not_a_blocker(self, project):
        _sign_uat(project.id)
        es.update_environment(_env(project.id, "production").id, {"ssl_enabled": True})
        readiness = es.is_ready_for_go_live(project.id)
        assert readiness["ready"] is True
        assert readiness["completed_items"] == 3

        es.update_environment(_env(project.id, "production").id, {"url": "https://www.example.com"})
        assert es.is_ready_for_go_live(project.id)["completed_items"] == 4

    def test_handover_documents(self, project):
        documents = es.list_handover_documents(project.id)
        assert [d["type"] for d in documents] == [
            "technical", "user", "admin", "deployment", "credentials", "warranty",
        ]
        documents[0]["available"] = False
        assert es.list_handover_documents(project.id)[0]["available"] is True

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            es.generate_go_live_checklist(9999)
