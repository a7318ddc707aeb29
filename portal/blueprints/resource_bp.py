"""
Resource Blueprint — sitemaps, SRS, designs, assets, credentials.

Endpoints:
    GET    /api/v1/projects/<pid>/resources              ?type=
    POST   /api/v1/projects/<pid>/resources
    GET    /api/v1/projects/<pid>/resources/check        ?types=sitemap,srs
    GET    /api/v1/resources/<rid>
    PUT    /api/v1/resources/<rid>                       re-upload (new version)
    POST   /api/v1/resources/<rid>/approve
    POST   /api/v1/resources/<rid>/reject
    DELETE /api/v1/resources/<rid>
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor
from portal.services import resource_service
from portal.utils.helpers import parse_int

resource_bp = Blueprint("resource", __name__, url_prefix="/api/v1")


@resource_bp.route("/projects/<int:project_id>/resources", methods=["GET"])
def list_resources(project_id):
    resources = resource_service.list_resources(project_id, resource_type=request.args.get("type"))
    return jsonify([r.to_dict() for r in resources]), 200


@resource_bp.route("/projects/<int:project_id>/resources", methods=["POST"])
def create_resource(project_id):
    """Body: { type, name, file_path? | url? | encrypted_data? }"""
    data = request.get_json(silent=True) or {}
    resource = resource_service.create_resource(project_id, data)
    return jsonify(resource.to_dict()), 201


@resource_bp.route("/projects/<int:project_id>/resources/check", methods=["GET"])
def check_required(project_id):
    types = [t.strip() for t in request.args.get("types", "").split(",") if t.strip()]
    return jsonify(resource_service.check_required_resources(project_id, types)), 200


@resource_bp.route("/resources/<int:resource_id>", methods=["GET"])
def get_resource(resource_id):
    return jsonify(resource_service.get_resource(resource_id).to_dict()), 200


@resource_bp.route("/resources/<int:resource_id>", methods=["PUT"])
def reupload_resource(resource_id):
    data = request.get_json(silent=True) or {}
    return jsonify(resource_service.reupload_resource(resource_id, data).to_dict()), 200


@resource_bp.route("/resources/<int:resource_id>/approve", methods=["POST"])
def approve_resource(resource_id):
    """Body: { approver_id? }  (defaults to X-User-Id)"""
    data = request.get_json(silent=True) or {}
    approver_id = parse_int(data.get("approver_id") or current_actor(), "approver_id")
    return jsonify(resource_service.approve_resource(resource_id, approver_id).to_dict()), 200


@resource_bp.route("/resources/<int:resource_id>/reject", methods=["POST"])
def reject_resource(resource_id):
    return jsonify(resource_service.reject_resource(resource_id).to_dict()), 200


@resource_bp.route("/resources/<int:resource_id>", methods=["DELETE"])
def delete_resource(resource_id):
    resource_service.delete_resource(resource_id)
    return jsonify({"deleted": True}), 200
