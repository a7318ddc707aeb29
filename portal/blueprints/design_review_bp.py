"""
Design Review Blueprint — client review of design resources.

Endpoints:
    GET  /api/v1/projects/<pid>/design-reviews
    POST /api/v1/projects/<pid>/design-reviews
    GET  /api/v1/projects/<pid>/design-reviews/stats
    GET  /api/v1/projects/<pid>/design-reviews/frontend-status
    GET  /api/v1/design-reviews/<rid>
    POST /api/v1/design-reviews/<rid>/approve
    POST /api/v1/design-reviews/<rid>/reject
    POST /api/v1/design-reviews/<rid>/request-changes
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor
from portal.services import design_review_service
from portal.utils.helpers import parse_int

design_review_bp = Blueprint("design_review", __name__, url_prefix="/api/v1")


def _reviewer_id(data):
    return parse_int(data.get("reviewer_id") or current_actor(), "reviewer_id")


@design_review_bp.route("/projects/<int:project_id>/design-reviews", methods=["GET"])
def list_reviews(project_id):
    reviews = design_review_service.list_reviews(project_id)
    return jsonify([r.to_dict(include_resource=True) for r in reviews]), 200


@design_review_bp.route("/projects/<int:project_id>/design-reviews", methods=["POST"])
def create_review(project_id):
    """Body: { resource_id }.  409 when the resource already has a pending review."""
    data = request.get_json(silent=True) or {}
    review = design_review_service.create_review(project_id, data.get("resource_id"))
    return jsonify(review.to_dict()), 201


@design_review_bp.route("/projects/<int:project_id>/design-reviews/stats", methods=["GET"])
def review_stats(project_id):
    return jsonify(design_review_service.get_review_stats(project_id)), 200


@design_review_bp.route("/projects/<int:project_id>/design-reviews/frontend-status", methods=["GET"])
def frontend_status(project_id):
    return jsonify(design_review_service.can_frontend_tasks_proceed(project_id)), 200


@design_review_bp.route("/design-reviews/<int:review_id>", methods=["GET"])
def get_review(review_id):
    return jsonify(design_review_service.get_review(review_id).to_dict(include_resource=True)), 200


@design_review_bp.route("/design-reviews/<int:review_id>/approve", methods=["POST"])
def approve_review(review_id):
    """Body: { reviewer_id?, comments? }  (reviewer defaults to X-User-Id)"""
    data = request.get_json(silent=True) or {}
    review = design_review_service.approve_review(review_id, _reviewer_id(data), data.get("comments"))
    return jsonify(review.to_dict()), 200


@design_review_bp.route("/design-reviews/<int:review_id>/reject", methods=["POST"])
def reject_review(review_id):
    data = request.get_json(silent=True) or {}
    review = design_review_service.reject_review(review_id, _reviewer_id(data), data.get("comments"))
    return jsonify(review.to_dict()), 200


@design_review_bp.route("/design-reviews/<int:review_id>/request-changes", methods=["POST"])
def request_changes(review_id):
    data = request.get_json(silent=True) or {}
    review = design_review_service.request_changes(review_id, _reviewer_id(data), data.get("comments"))
    return jsonify(review.to_dict()), 200
