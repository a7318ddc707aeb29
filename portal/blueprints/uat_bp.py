"""
UAT Blueprint — client feedback and sign-offs.

Endpoints:
    GET    /api/v1/projects/<pid>/uat/status
    GET    /api/v1/projects/<pid>/uat/feedback         ?status=
    POST   /api/v1/projects/<pid>/uat/feedback
    PATCH  /api/v1/uat/feedback/<fid>/status
    GET    /api/v1/projects/<pid>/signoffs
    POST   /api/v1/projects/<pid>/signoffs             409 with reasons when refused
    GET    /api/v1/projects/<pid>/signoffs/uat/eligibility
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor
from portal.services import uat_service

uat_bp = Blueprint("uat", __name__, url_prefix="/api/v1")


@uat_bp.route("/projects/<int:project_id>/uat/status", methods=["GET"])
def uat_status(project_id):
    return jsonify(uat_service.get_uat_status(project_id)), 200


@uat_bp.route("/projects/<int:project_id>/uat/feedback", methods=["GET"])
def list_feedback(project_id):
    feedback = uat_service.list_feedback(project_id, status=request.args.get("status"))
    return jsonify([f.to_dict() for f in feedback]), 200


@uat_bp.route("/projects/<int:project_id>/uat/feedback", methods=["POST"])
def create_feedback(project_id):
    """Body: { feedback_text, provided_by, feature_name?, page_url? }"""
    data = request.get_json(silent=True) or {}
    return jsonify(uat_service.create_feedback(project_id, data).to_dict()), 201


@uat_bp.route("/uat/feedback/<int:feedback_id>/status", methods=["PATCH"])
def update_feedback_status(feedback_id):
    """Body: { status }  — pending | addressed | rejected"""
    data = request.get_json(silent=True) or {}
    return jsonify(uat_service.update_feedback_status(feedback_id, data.get("status")).to_dict()), 200


@uat_bp.route("/projects/<int:project_id>/signoffs", methods=["GET"])
def list_signoffs(project_id):
    return jsonify([s.to_dict() for s in uat_service.list_signoffs(project_id)]), 200


@uat_bp.route("/projects/<int:project_id>/signoffs", methods=["POST"])
def create_signoff(project_id):
    """Body: { signoff_type, approver_name, approver_email?, signature_data?, notes? }"""
    data = request.get_json(silent=True) or {}
    signoff = uat_service.create_signoff(project_id, data, actor=current_actor())
    return jsonify(signoff.to_dict()), 201


@uat_bp.route("/projects/<int:project_id>/signoffs/uat/eligibility", methods=["GET"])
def uat_signoff_eligibility(project_id):
    return jsonify(uat_service.can_create_uat_signoff(project_id)), 200
