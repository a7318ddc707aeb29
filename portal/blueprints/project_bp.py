"""
Project & Phase Blueprint.

Projects, their six-phase timeline, phase gating and cascade deletion.

Endpoints:
    GET    /api/v1/projects                               ?status=
    POST   /api/v1/projects
    GET    /api/v1/projects/<pid>
    PUT    /api/v1/projects/<pid>
    DELETE /api/v1/projects/<pid>                         cascade delete
    GET    /api/v1/projects/<pid>/dependents              row counts per table
    GET    /api/v1/projects/<pid>/audit                   ?action=

    GET    /api/v1/projects/<pid>/phases
    GET    /api/v1/projects/<pid>/phases/current
    GET    /api/v1/projects/<pid>/phases/progress
    GET    /api/v1/projects/<pid>/phases/validate
    POST   /api/v1/projects/<pid>/phases/transition       200, or 409 with missing_requirements
    POST   /api/v1/phases/<phase_id>/block
    POST   /api/v1/phases/<phase_id>/unblock
    GET    /api/v1/phases/display-info[/<phase_type>]
    GET    /api/v1/phases/requirements

Layer contract: no db.session calls here; every write is owned by a service.
"""

import logging

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor
from portal.core.exceptions import NotFoundError
from portal.models.project import PHASE_ORDER
from portal.services import phase_transition_service as phases
from portal.services import project_deletion, project_service
from portal.services.phase_requirements import list_requirements
from portal.utils.errors import E, api_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    status = request.args.get("status")
    return jsonify([p.to_dict() for p in project_service.list_projects(status=status)]), 200


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Create a project with its phases, environments and board.

    Body: { name, key, description?, status?, manager_id?, start_date?, end_date? }
    Returns: project dict with phases (201).
    """
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(data, actor=current_actor())
    return jsonify(project.to_dict(include_children=True)), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(project_id)
    return jsonify(project.to_dict(include_children=True)), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    data = request.get_json(silent=True) or {}
    project = project_service.update_project(project_id, data, actor=current_actor())
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    """Delete a project and every row it owns.

    Returns: deletion report { project_id, deleted_counts, total_deleted }.
    """
    report = project_deletion.delete_project(project_id, actor=current_actor())
    return jsonify(report.to_dict()), 200


@project_bp.route("/projects/<int:project_id>/dependents", methods=["GET"])
def count_dependents(project_id):
    project_service.get_project(project_id)
    return jsonify(project_deletion.count_dependents(project_id)), 200


@project_bp.route("/projects/<int:project_id>/audit", methods=["GET"])
def list_audit(project_id):
    logs = project_service.list_audit_logs(project_id, action=request.args.get("action"))
    return jsonify([log.to_dict() for log in logs]), 200


# ═════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<int:project_id>/phases", methods=["GET"])
def list_phases(project_id):
    return jsonify([p.to_dict() for p in phases.list_phases(project_id)]), 200


@project_bp.route("/projects/<int:project_id>/phases/current", methods=["GET"])
def current_phase(project_id):
    phase = phases.get_current_phase(project_id)
    return jsonify({**phase.to_dict(), "display": phases.get_phase_display_info(phase.phase_type)}), 200


@project_bp.route("/projects/<int:project_id>/phases/progress", methods=["GET"])
def phase_progress(project_id):
    return jsonify(phases.get_phase_progress(project_id)), 200


@project_bp.route("/projects/<int:project_id>/phases/validate", methods=["GET"])
def validate_transition(project_id):
    """Dry run of the phase gate.

    Returns: { can_transition, missing_requirements, current_phase, next_phase, checks }.
    """
    return jsonify(phases.validate_transition(project_id).to_dict()), 200


@project_bp.route("/projects/<int:project_id>/phases/transition", methods=["POST"])
def execute_transition(project_id):
    """Advance the project to its next phase.

    Returns: 200 { success, completed_phase, started_phase }, or
             409 PHASE_REQUIREMENTS_UNMET with details.missing_requirements.
    """
    result = phases.execute_transition(project_id, actor=current_actor())
    if not result.success:
        return api_error(
            E.PHASE_BLOCKED,
            "Phase requirements not met",
            details={"missing_requirements": result.missing_requirements},
        )
    return jsonify(result.to_dict()), 200


@project_bp.route("/phases/<int:phase_id>/block", methods=["POST"])
def block_phase(phase_id):
    """Body: { reason }"""
    data = request.get_json(silent=True) or {}
    phase = phases.block_phase(phase_id, data.get("reason"), actor=current_actor())
    return jsonify(phase.to_dict()), 200


@project_bp.route("/phases/<int:phase_id>/unblock", methods=["POST"])
def unblock_phase(phase_id):
    phase = phases.unblock_phase(phase_id, actor=current_actor())
    return jsonify(phase.to_dict()), 200


@project_bp.route("/phases/display-info", methods=["GET"])
def all_display_info():
    return jsonify([phases.get_phase_display_info(p) for p in PHASE_ORDER]), 200


@project_bp.route("/phases/display-info/<phase_type>", methods=["GET"])
def display_info(phase_type):
    info = phases.get_phase_display_info(phase_type)
    if info is None:
        raise NotFoundError(resource="Phase type", resource_id=phase_type)
    return jsonify(info), 200


@project_bp.route("/phases/requirements", methods=["GET"])
def requirements():
    return jsonify(list_requirements()), 200
