"""
Bug Report Blueprint.

Endpoints:
    GET    /api/v1/projects/<pid>/bugs              ?severity= &status=
    POST   /api/v1/projects/<pid>/bugs
    GET    /api/v1/projects/<pid>/bugs/statistics
    GET    /api/v1/bugs/<bid>
    PUT    /api/v1/bugs/<bid>
    PATCH  /api/v1/bugs/<bid>/status
    DELETE /api/v1/bugs/<bid>
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor
from portal.services import bug_service

bug_bp = Blueprint("bug", __name__, url_prefix="/api/v1")


@bug_bp.route("/projects/<int:project_id>/bugs", methods=["GET"])
def list_bugs(project_id):
    bugs = bug_service.list_bugs(
        project_id,
        severity=request.args.get("severity"),
        status=request.args.get("status"),
    )
    return jsonify([b.to_dict() for b in bugs]), 200


@bug_bp.route("/projects/<int:project_id>/bugs", methods=["POST"])
def create_bug(project_id):
    """Report a bug.

    Body: { title, severity, environment, reproduction_steps, reported_by?,
            description?, task_id?, assigned_to? }
    Returns: bug dict (201).
    """
    data = request.get_json(silent=True) or {}
    actor = current_actor()
    if not data.get("reported_by") and actor and actor.isdigit():
        data["reported_by"] = int(actor)
    return jsonify(bug_service.create_bug(project_id, data).to_dict()), 201


@bug_bp.route("/projects/<int:project_id>/bugs/statistics", methods=["GET"])
def bug_statistics(project_id):
    return jsonify(bug_service.get_test_statistics(project_id)), 200


@bug_bp.route("/bugs/<int:bug_id>", methods=["GET"])
def get_bug(bug_id):
    return jsonify(bug_service.get_bug(bug_id).to_dict()), 200


@bug_bp.route("/bugs/<int:bug_id>", methods=["PUT"])
def update_bug(bug_id):
    data = request.get_json(silent=True) or {}
    return jsonify(bug_service.update_bug(bug_id, data).to_dict()), 200


@bug_bp.route("/bugs/<int:bug_id>/status", methods=["PATCH"])
def update_bug_status(bug_id):
    """Body: { status }"""
    data = request.get_json(silent=True) or {}
    return jsonify(bug_service.update_bug_status(bug_id, data.get("status")).to_dict()), 200


@bug_bp.route("/bugs/<int:bug_id>", methods=["DELETE"])
def delete_bug(bug_id):
    bug_service.delete_bug(bug_id)
    return jsonify({"deleted": True}), 200
