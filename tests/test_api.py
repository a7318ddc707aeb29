"""HTTP API tests (Flask test client)."""

import pytest

MANAGER = {"X-User-Role": "Manager", "X-User-Id": "pm-7"}
DEVELOPER = {"X-User-Role": "Developer", "X-User-Id": "dev-3"}


def _create_project(client, key="WEB"):
    res = client.post("/api/v1/projects", json={"name": "Corporate Website", "key": key}, headers=MANAGER)
    assert res.status_code == 201
    return res.get_json()


def _approve(client, project_id, payload):
    res = client.post(f"/api/v1/projects/{project_id}/resources", json=payload)
    assert res.status_code == 201
    rid = res.get_json()["id"]
    res = client.post(f"/api/v1/resources/{rid}/approve", headers={"X-User-Id": "12"})
    assert res.status_code == 200
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# 1. Health and error envelope
# ═════════════════════════════════════════════════════════════════════════════


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"

    def test_unknown_project(self, client):
        res = client.get("/api/v1/projects/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Projects and phases
# ═════════════════════════════════════════════════════════════════════════════


class TestProjectsApi:
    def test_create_returns_timeline(self, client):
        body = _create_project(client)
        assert body["key"] == "WEB"
        assert [p["status"] for p in body["phases"]] == ["in_progress"] + ["pending"] * 5

    def test_duplicate_key(self, client):
        _create_project(client)
        res = client.post("/api/v1/projects", json={"name": "Again", "key": "web"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_missing_name(self, client):
        res = client.post("/api/v1/projects", json={"key": "X"})
        assert res.status_code == 422

    def test_audit_records_actor(self, client):
        pid = _create_project(client)["id"]
        logs = client.get(f"/api/v1/projects/{pid}/audit").get_json()
        assert [(log["action"], log["actor"]) for log in logs] == [("create", "pm-7")]


class TestPhaseApi:
    def test_blocked_transition_lists_missing_requirements(self, client):
        pid = _create_project(client)["id"]
        res = client.post(f"/api/v1/projects/{pid}/phases/transition")
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "PHASE_REQUIREMENTS_UNMET"
        assert body["details"]["missing_requirements"] == [
            "SITEMAP/SRS not approved",
            "tech stack not selected",
        ]

    def test_transition_succeeds_once_requirements_met(self, client):
        pid = _create_project(client)["id"]
        _approve(client, pid, {"type": "srs", "name": "SRS", "file_path": "srs.pdf"})
        res = client.post(f"/api/v1/projects/{pid}/tech-stack", json={"name": "Django", "category": "framework"})
        assert res.status_code == 201

        validation = client.get(f"/api/v1/projects/{pid}/phases/validate").get_json()
        assert validation["can_transition"] is True
        assert validation["next_phase"] == "technical_planning"

        res = client.post(f"/api/v1/projects/{pid}/phases/transition", headers=MANAGER)
        assert res.status_code == 200
        body = res.get_json()
        assert body["completed_phase"]["phase_type"] == "kickoff"
        assert body["started_phase"]["phase_type"] == "technical_planning"

        current = client.get(f"/api/v1/projects/{pid}/phases/current").get_json()
        assert current["phase_type"] == "technical_planning"
        assert current["display"]["name"] == "Technical Planning"
        assert client.get(f"/api/v1/projects/{pid}/phases/progress").get_json()["percent"] == 17

    def test_display_info(self, client):
        assert len(client.get("/api/v1/phases/display-info").get_json()) == 6
        assert client.get("/api/v1/phases/display-info/launch").status_code == 404

    def test_requirements_table(self, client):
        codes = [r["requirement"] for r in client.get("/api/v1/phases/requirements").get_json()]
        assert "TECH_STACK_SELECTED" in codes


# ═════════════════════════════════════════════════════════════════════════════
# 3. Tech stack lock
# ═════════════════════════════════════════════════════════════════════════════


class TestTechStackApi:
    def test_lock_requires_privileged_role(self, client):
        pid = _create_project(client)["id"]
        client.post(f"/api/v1/projects/{pid}/tech-stack", json={"name": "Django", "category": "framework"})

        res = client.post(f"/api/v1/projects/{pid}/tech-stack/lock", headers=DEVELOPER)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

        res = client.post(f"/api/v1/projects/{pid}/tech-stack/lock", headers=MANAGER)
        assert res.status_code == 200
        assert all(item["locked_by"] == "pm-7" for item in res.get_json())

    def test_locked_stack_refuses_additions(self, client):
        pid = _create_project(client)["id"]
        client.post(f"/api/v1/projects/{pid}/tech-stack", json={"name": "Django", "category": "framework"})
        client.post(f"/api/v1/projects/{pid}/tech-stack/lock", headers=MANAGER)

        res = client.post(f"/api/v1/projects/{pid}/tech-stack", json={"name": "React", "category": "frontend"})
        assert res.status_code == 409
        assert res.get_json()["details"]["reasons"] == ["tech stack is locked"]

    def test_empty_stack_cannot_lock(self, client):
        pid = _create_project(client)["id"]
        res = client.post(f"/api/v1/projects/{pid}/tech-stack/lock", headers=MANAGER)
        assert res.status_code == 409
        assert res.get_json()["details"]["reasons"] == ["tech stack is empty"]


# ═════════════════════════════════════════════════════════════════════════════
# 4. Cascade delete
# ═════════════════════════════════════════════════════════════════════════════


class TestDeleteApi:
    def test_delete_reports_counts(self, client):
        pid = _create_project(client)["id"]
        client.post(f"/api/v1/projects/{pid}/tasks", json={"title": "Header"})

        res = client.delete(f"/api/v1/projects/{pid}", headers=MANAGER)
        assert res.status_code == 200
        report = res.get_json()
        assert report["deleted_counts"]["projects"] == 1
        assert report["deleted_counts"]["tasks"] == 1
        assert report["deleted_counts"]["project_phases"] == 6

        assert client.get(f"/api/v1/projects/{pid}").status_code == 404
        assert client.delete(f"/api/v1/projects/{pid}").status_code == 404
        actions = [log["action"] for log in client.get(f"/api/v1/projects/{pid}/audit").get_json()]
        assert actions[0] == "delete"


# ═════════════════════════════════════════════════════════════════════════════
# 5. Supporting resources
# ═════════════════════════════════════════════════════════════════════════════


class TestSupportingApi:
    def test_production_deploy_requires_signoff(self, client):
        pid = _create_project(client)["id"]
        envs = {e["env_type"]: e for e in client.get(f"/api/v1/projects/{pid}/environments").get_json()}
        payload = {"environment_id": envs["production"]["id"], "version": "1.0"}

        res = client.post(f"/api/v1/projects/{pid}/deployments", json=payload, headers=MANAGER)
        assert res.status_code == 409
        assert res.get_json()["details"]["reasons"] == [
            "UAT sign-off is required before Production deployment",
        ]

        res = client.post(f"/api/v1/projects/{pid}/signoffs", json={"signoff_type": "uat", "approver_name": "Client"})
        assert res.status_code == 201
        res = client.post(f"/api/v1/projects/{pid}/deployments", json=payload, headers=MANAGER)
        assert res.status_code == 201
        assert res.get_json()["deployment"]["deployed_by"] == "pm-7"

    def test_uat_signoff_blocked_by_pending_feedback(self, client):
        pid = _create_project(client)["id"]
        res = client.post(f"/api/v1/projects/{pid}/uat/feedback",
                          json={"feedback_text": "Typo on home", "provided_by": "Client"})
        fid = res.get_json()["id"]

        eligibility = client.get(f"/api/v1/projects/{pid}/signoffs/uat/eligibility").get_json()
        assert eligibility["can_signoff"] is False

        res = client.patch(f"/api/v1/uat/feedback/{fid}/status", json={"status": "addressed"})
        assert res.status_code == 200
        assert client.get(f"/api/v1/projects/{pid}/uat/status").get_json()["can_signoff"] is True

    def test_bug_report_validation(self, client):
        pid = _create_project(client)["id"]
        res = client.post(f"/api/v1/projects/{pid}/bugs", json={"title": "Broken"})
        assert res.status_code == 422
        assert "Severity is required" in res.get_json()["details"]["errors"]

    def test_board(self, client):
        pid = _create_project(client)["id"]
        client.post(f"/api/v1/projects/{pid}/tasks", json={"title": "Header"})
        board = client.get(f"/api/v1/projects/{pid}/board").get_json()
        assert [c["name"] for c in board] == ["Backlog", "To Do", "In Progress", "Review", "Done"]
        assert [t["code"] for t in board[0]["tasks"]] == ["WEB-1"]

    @pytest.mark.parametrize("approver", [None, "not-a-number"])
    def test_approve_requires_numeric_approver(self, client, approver):
        pid = _create_project(client)["id"]
        rid = client.post(f"/api/v1/projects/{pid}/resources",
                          json={"type": "srs", "name": "SRS", "file_path": "srs.pdf"}).get_json()["id"]
        res = client.post(f"/api/v1/resources/{rid}/approve", json={"approver_id": approver})
        assert res.status_code == 422

    @pytest.mark.parametrize("path, payload, field", [
        ("deployments", {"environment_id": "staging", "version": "1.0"}, "environment_id"),
        ("bugs", {"title": "Broken", "severity": "low", "environment": "staging",
                  "reproduction_steps": "Click", "reported_by": 7, "task_id": "WEB-1"}, "task_id"),
    ])
    def test_non_numeric_ids_are_rejected(self, client, path, payload, field):
        pid = _create_project(client)["id"]
        res = client.post(f"/api/v1/projects/{pid}/{path}", json=payload, headers=MANAGER)
        assert res.status_code == 422
        assert res.get_json()["details"] == {field: payload[field]}


# ═════════════════════════════════════════════════════════════════════════════
# 6. Design reviews and go-live
# ═════════════════════════════════════════════════════════════════════════════


class TestDesignReviewApi:
    def test_review_lifecycle(self, client):
        pid = _create_project(client)["id"]
        rid = client.post(f"/api/v1/projects/{pid}/resources",
                          json={"type": "mockup", "name": "Home", "file_path": "home.png"}).get_json()["id"]

        res = client.post(f"/api/v1/projects/{pid}/design-reviews", json={"resource_id": rid})
        assert res.status_code == 201
        review_id = res.get_json()["id"]

        res = client.post(f"/api/v1/projects/{pid}/design-reviews", json={"resource_id": rid})
        assert res.status_code == 409
        assert res.get_json()["details"]["reasons"] == ["A pending review already exists for this resource"]

        res = client.post(f"/api/v1/design-reviews/{review_id}/reject", json={}, headers={"X-User-Id": "12"})
        assert res.status_code == 422

        res = client.post(f"/api/v1/design-reviews/{review_id}/approve", json={"comments": "Ship it"},
                          headers={"X-User-Id": "12"})
        assert res.status_code == 200
        assert res.get_json()["reviewer_id"] == 12
        assert res.get_json()["version_locked"] == 1

        listed = client.get(f"/api/v1/projects/{pid}/design-reviews").get_json()
        assert listed[0]["resource"]["status"] == "approved"
        status = client.get(f"/api/v1/projects/{pid}/design-reviews/frontend-status").get_json()
        assert status["can_proceed"] is True

    def test_review_needs_numeric_reviewer(self, client):
        pid = _create_project(client)["id"]
        rid = client.post(f"/api/v1/projects/{pid}/resources",
                          json={"type": "wireframe", "name": "Home", "file_path": "home.png"}).get_json()["id"]
        review_id = client.post(f"/api/v1/projects/{pid}/design-reviews",
                                json={"resource_id": rid}).get_json()["id"]
        res = client.post(f"/api/v1/design-reviews/{review_id}/approve", json={"reviewer_id": "lead"})
        assert res.status_code == 422


class TestGoLiveApi:
    def test_readiness_follows_signoff_and_ssl(self, client):
        pid = _create_project(client)["id"]
        readiness = client.get(f"/api/v1/projects/{pid}/go-live/readiness").get_json()
        assert readiness["blockers"] == ["UAT Sign-off", "SSL Certificate"]

        client.post(f"/api/v1/projects/{pid}/signoffs", json={"signoff_type": "uat", "approver_name": "Client"})
        envs = {e["env_type"]: e for e in client.get(f"/api/v1/projects/{pid}/environments").get_json()}
        client.put(f"/api/v1/environments/{envs['production']['id']}", json={"ssl_enabled": True})

        readiness = client.get(f"/api/v1/projects/{pid}/go-live/readiness").get_json()
        assert readiness["ready"] is True
        checklist = client.get(f"/api/v1/projects/{pid}/go-live/checklist").get_json()
        assert len(checklist) == readiness["total_items"]
        handover = client.get(f"/api/v1/projects/{pid}/go-live/handover").get_json()
        assert len(handover["documents"]) == 6
