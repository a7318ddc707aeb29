"""
Tech Stack Blueprint.

Endpoints:
    GET    /api/v1/projects/<pid>/tech-stack
    POST   /api/v1/projects/<pid>/tech-stack               add item (409 when locked)
    GET    /api/v1/projects/<pid>/tech-stack/summary
    GET    /api/v1/projects/<pid>/tech-stack/suggestions   ?category=
    POST   /api/v1/projects/<pid>/tech-stack/compatibility dry-run check of one item
    POST   /api/v1/projects/<pid>/tech-stack/lock          Manager / Admin
    POST   /api/v1/projects/<pid>/tech-stack/unlock        Manager / Admin
    PUT    /api/v1/tech-stack/<item_id>
    DELETE /api/v1/tech-stack/<item_id>

The caller role comes from ``X-User-Role``; role checks live in the service.
"""

import logging

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor, current_role
from portal.services import tech_stack_service as tss
from portal.utils.helpers import require_text

logger = logging.getLogger(__name__)

tech_stack_bp = Blueprint("tech_stack", __name__, url_prefix="/api/v1")


@tech_stack_bp.route("/projects/<int:project_id>/tech-stack", methods=["GET"])
def list_tech_stack(project_id):
    return jsonify([item.to_dict() for item in tss.list_tech_stack(project_id)]), 200


@tech_stack_bp.route("/projects/<int:project_id>/tech-stack", methods=["POST"])
def add_tech_stack_item(project_id):
    """Add a technology.

    Body: { category, name, version? }
    Returns: { item, compatibility } (201).  Incompatibility is advisory.
    """
    data = request.get_json(silent=True) or {}
    item, compatibility = tss.add_tech_stack_item(project_id, data)
    return jsonify({"item": item.to_dict(), "compatibility": compatibility.to_dict()}), 201


@tech_stack_bp.route("/projects/<int:project_id>/tech-stack/summary", methods=["GET"])
def tech_stack_summary(project_id):
    return jsonify(tss.get_tech_stack_summary(project_id)), 200


@tech_stack_bp.route("/projects/<int:project_id>/tech-stack/suggestions", methods=["GET"])
def tech_stack_suggestions(project_id):
    category = request.args.get("category", "")
    existing = tss.list_tech_stack(project_id)
    return jsonify({"category": category,
                    "suggestions": tss.get_compatibility_suggestions(category, existing)}), 200


@tech_stack_bp.route("/projects/<int:project_id>/tech-stack/compatibility", methods=["POST"])
def check_compatibility(project_id):
    """Body: { name, category }.  Nothing is written."""
    data = request.get_json(silent=True) or {}
    candidate = {"name": require_text(data, "name"), "category": data.get("category")}
    existing = tss.list_tech_stack(project_id)
    return jsonify(tss.check_compatibility(candidate, existing).to_dict()), 200


@tech_stack_bp.route("/projects/<int:project_id>/tech-stack/lock", methods=["POST"])
def lock_tech_stack(project_id):
    """Validate and lock the whole stack.

    Body: { locked_by? }  (defaults to X-User-Id)
    Returns: locked items; 403 for other roles, 409 with reasons when invalid.
    """
    data = request.get_json(silent=True) or {}
    locked_by = data.get("locked_by") or current_actor() or "system"
    items = tss.lock_tech_stack(project_id, str(locked_by), current_role())
    return jsonify([item.to_dict() for item in items]), 200


@tech_stack_bp.route("/projects/<int:project_id>/tech-stack/unlock", methods=["POST"])
def unlock_tech_stack(project_id):
    items = tss.unlock_tech_stack(project_id, current_role(), actor=current_actor())
    return jsonify([item.to_dict() for item in items]), 200


@tech_stack_bp.route("/tech-stack/<int:item_id>", methods=["PUT"])
def update_tech_stack_item(item_id):
    data = request.get_json(silent=True) or {}
    item = tss.update_tech_stack_item(item_id, data, current_role(), actor=current_actor())
    return jsonify(item.to_dict()), 200


@tech_stack_bp.route("/tech-stack/<int:item_id>", methods=["DELETE"])
def remove_tech_stack_item(item_id):
    tss.remove_tech_stack_item(item_id, current_role(), actor=current_actor())
    return jsonify({"deleted": True}), 200
