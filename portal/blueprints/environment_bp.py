"""
Environment & Deployment Blueprint.

Endpoints:
    GET  /api/v1/projects/<pid>/environments
    GET  /api/v1/projects/<pid>/environments/readiness
    POST /api/v1/projects/<pid>/deployments                  deploy
    GET  /api/v1/environments/<eid>                          ?history=1
    PUT  /api/v1/environments/<eid>
    GET  /api/v1/environments/<eid>/deployments              newest first
    POST /api/v1/environments/<eid>/rollback
    POST /api/v1/deployments/<did>/fail
    GET  /api/v1/projects/<pid>/go-live/checklist
    GET  /api/v1/projects/<pid>/go-live/readiness
    GET  /api/v1/projects/<pid>/go-live/handover
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor
from portal.services import environment_service
from portal.utils.helpers import parse_int

environment_bp = Blueprint("environment", __name__, url_prefix="/api/v1")


@environment_bp.route("/projects/<int:project_id>/environments", methods=["GET"])
def list_environments(project_id):
    return jsonify([e.to_dict() for e in environment_service.list_environments(project_id)]), 200


@environment_bp.route("/projects/<int:project_id>/environments/readiness", methods=["GET"])
def deployment_readiness(project_id):
    return jsonify(environment_service.get_deployment_readiness(project_id)), 200


@environment_bp.route("/projects/<int:project_id>/deployments", methods=["POST"])
def deploy(project_id):
    """Record a deployment.

    Body: { environment_id, version, deployed_by?, commit_hash?, notes?, status? }
    Returns: { deployment, warnings } (201); 409 for production without UAT sign-off.
    """
    data = request.get_json(silent=True) or {}
    data.setdefault("deployed_by", current_actor())
    deployment, warnings = environment_service.deploy(project_id, data)
    return jsonify({"deployment": deployment.to_dict(), "warnings": warnings}), 201


@environment_bp.route("/environments/<int:environment_id>", methods=["GET"])
def get_environment(environment_id):
    environment = environment_service.get_environment(environment_id)
    include_history = request.args.get("history") in ("1", "true")
    return jsonify(environment.to_dict(include_history=include_history)), 200


@environment_bp.route("/environments/<int:environment_id>", methods=["PUT"])
def update_environment(environment_id):
    data = request.get_json(silent=True) or {}
    return jsonify(environment_service.update_environment(environment_id, data).to_dict()), 200


@environment_bp.route("/environments/<int:environment_id>/deployments", methods=["GET"])
def deployment_history(environment_id):
    history = environment_service.get_deployment_history(environment_id)
    return jsonify([d.to_dict() for d in history]), 200


@environment_bp.route("/environments/<int:environment_id>/rollback", methods=["POST"])
def rollback(environment_id):
    """Body: { deployment_id, user_id? }"""
    data = request.get_json(silent=True) or {}
    deployment_id = parse_int(data.get("deployment_id"), "deployment_id")
    user_id = data.get("user_id") or current_actor() or "system"
    deployment = environment_service.rollback(environment_id, deployment_id, str(user_id))
    return jsonify(deployment.to_dict()), 201


@environment_bp.route("/deployments/<int:deployment_id>/fail", methods=["POST"])
def mark_failed(deployment_id):
    return jsonify(environment_service.mark_deployment_failed(deployment_id).to_dict()), 200


@environment_bp.route("/projects/<int:project_id>/go-live/checklist", methods=["GET"])
def go_live_checklist(project_id):
    return jsonify(environment_service.generate_go_live_checklist(project_id)), 200


@environment_bp.route("/projects/<int:project_id>/go-live/readiness", methods=["GET"])
def go_live_readiness(project_id):
    return jsonify(environment_service.is_ready_for_go_live(project_id)), 200


@environment_bp.route("/projects/<int:project_id>/go-live/handover", methods=["GET"])
def handover_documents(project_id):
    return jsonify({"documents": environment_service.list_handover_documents(project_id)}), 200
