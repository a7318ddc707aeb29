"""
Shared pytest fixtures for the Project Lifecycle Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - fixed_clock: Pins ``portal.core.clock.now()`` to FIXED_NOW
    - enforce_uat: Real UAT evaluators instead of the stubs
    - make_project / project: Projects created through the service layer
    - lifecycle: Helpers that satisfy phase requirements
    - threaded_app / run_concurrently: File-backed app for multi-thread tests
"""

import threading
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from portal import create_app
from portal.models import db as _db
from portal.models.environment import Environment

FIXED_NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def fixed_clock(app):
    app.config["CLOCK"] = lambda: FIXED_NOW
    yield FIXED_NOW
    app.config["CLOCK"] = None


@pytest.fixture()
def enforce_uat(app):
    app.config["PHASE_GATE_ENFORCE_UAT"] = True
    yield
    app.config["PHASE_GATE_ENFORCE_UAT"] = False


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_project():
    """Factory: create a project (with phases, environments, board) via the service."""
    from portal.services.project_service import create_project

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {"name": f"Project {counter['n']}", "key": f"PRJ{counter['n']}"}
        data.update(overrides)
        return create_project(data, actor="tester")

    return _make


@pytest.fixture()
def project(make_project):
    return make_project(name="Corporate Website", key="WEB")


@pytest.fixture()
def lifecycle():
    """Helpers that put a project into a state satisfying each phase gate."""
    from portal.services import environment_service, resource_service, tech_stack_service
    from portal.services.phase_transition_service import execute_transition, get_current_phase, next_phase

    def approved_resource(project_id, resource_type="srs", file_path="srs.pdf", url=None):
        data = {"type": resource_type, "name": f"{resource_type} document"}
        if url:
            data["url"] = url
        else:
            data["file_path"] = file_path
        resource = resource_service.create_resource(project_id, data)
        return resource_service.approve_resource(resource.id, approver_id=1)

    def tech_item(project_id, name="Django", category="framework"):
        item, _ = tech_stack_service.add_tech_stack_item(project_id, {"name": name, "category": category})
        return item

    def staging_deployed(project_id, version="1.0.0", status="success"):
        staging = Environment.query.filter_by(project_id=project_id, env_type="staging").one()
        environment_service.update_environment(staging.id, {"url": "https://staging.example.com"})
        deployment, _ = environment_service.deploy(project_id, {
            "environment_id": staging.id,
            "version": version,
            "deployed_by": "ci",
            "status": status,
        })
        return deployment

    satisfy = {
        "technical_planning": lambda pid: (approved_resource(pid), tech_item(pid)),
        "development": lambda pid: approved_resource(pid, "wireframe", "home.png"),
        "internal_testing": staging_deployed,
        "uat": lambda pid: None,
        "go_live": lambda pid: None,
    }

    def advance_to(project_id, target_phase):
        """Satisfy every gate and transition until *target_phase* is current."""
        while get_current_phase(project_id).phase_type != target_phase:
            upcoming = next_phase(get_current_phase(project_id).phase_type)
            satisfy[upcoming](project_id)
            result = execute_transition(project_id, actor="tester")
            assert result.success, result.missing_requirements

    return SimpleNamespace(
        approved_resource=approved_resource,
        tech_item=tech_item,
        staging_deployed=staging_deployed,
        advance_to=advance_to,
    )


# ── Concurrency fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def threaded_app(tmp_path):
    """App on a file-backed SQLite database; each thread gets its own connection."""
    application = create_app("testing", SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'lifecycle.db'}")
    yield application
    with application.app_context():
        _db.engine.dispose()


@pytest.fixture()
def run_concurrently():
    """Run callables in parallel threads, each inside its own app context.

    Returns (results, errors) in completion order.
    """

    def _run(app, *targets):
        results, errors = [], []
        guard = threading.Lock()

        def runner(target):
            with app.app_context():
                try:
                    outcome = target()
                except Exception as exc:  # collected for the assertions
                    with guard:
                        errors.append(exc)
                else:
                    with guard:
                        results.append(outcome)

        threads = [threading.Thread(target=runner, args=(t,)) for t in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return results, errors

    return _run
