"""
Task Board Blueprint.

Endpoints:
    GET    /api/v1/projects/<pid>/board                     columns with their tasks
    GET    /api/v1/projects/<pid>/columns
    POST   /api/v1/projects/<pid>/columns
    GET    /api/v1/projects/<pid>/tasks                     ?column_id=
    POST   /api/v1/projects/<pid>/tasks
    GET    /api/v1/tasks/<tid>
    PUT    /api/v1/tasks/<tid>
    POST   /api/v1/tasks/<tid>/move
    DELETE /api/v1/tasks/<tid>
    POST   /api/v1/tasks/<tid>/tags          DELETE /api/v1/tasks/<tid>/tags/<name>
    GET    /api/v1/tasks/<tid>/checklist     POST   /api/v1/tasks/<tid>/checklist
    PUT    /api/v1/checklist/<item_id>
    POST   /api/v1/tasks/<tid>/comments
    GET    /api/v1/tasks/<tid>/dependencies  POST   /api/v1/tasks/<tid>/dependencies
    DELETE /api/v1/dependencies/<dep_id>
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import current_actor
from portal.core.exceptions import NotFoundError
from portal.services import task_service
from portal.utils.helpers import parse_int

task_bp = Blueprint("task", __name__, url_prefix="/api/v1")


# ── Board & columns ──────────────────────────────────────────────────────


@task_bp.route("/projects/<int:project_id>/board", methods=["GET"])
def get_board(project_id):
    columns = task_service.list_columns(project_id)
    tasks = task_service.list_tasks(project_id)
    by_column: dict[int, list] = {c.id: [] for c in columns}
    for task in tasks:
        by_column.setdefault(task.column_id, []).append(task.to_dict())
    return jsonify([{**c.to_dict(), "tasks": by_column[c.id]} for c in columns]), 200


@task_bp.route("/projects/<int:project_id>/columns", methods=["GET"])
def list_columns(project_id):
    return jsonify([c.to_dict() for c in task_service.list_columns(project_id)]), 200


@task_bp.route("/projects/<int:project_id>/columns", methods=["POST"])
def create_column(project_id):
    data = request.get_json(silent=True) or {}
    return jsonify(task_service.create_column(project_id, data).to_dict()), 201


# ── Tasks ────────────────────────────────────────────────────────────────


@task_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
def list_tasks(project_id):
    column_id = request.args.get("column_id", type=int)
    return jsonify([t.to_dict() for t in task_service.list_tasks(project_id, column_id=column_id)]), 200


@task_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
def create_task(project_id):
    """Body: { title, code?, column_id?, description?, category?, priority?, assignee_id? }"""
    data = request.get_json(silent=True) or {}
    return jsonify(task_service.create_task(project_id, data).to_dict()), 201


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(task_service.get_task(task_id).to_dict(include_children=True)), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task(task_id):
    data = request.get_json(silent=True) or {}
    return jsonify(task_service.update_task(task_id, data).to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/move", methods=["POST"])
def move_task(task_id):
    """Body: { column_id, position? }"""
    data = request.get_json(silent=True) or {}
    column_id = parse_int(data.get("column_id"), "column_id")
    task = task_service.move_task(task_id, column_id, data.get("position"))
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(task_id):
    task_service.delete_task(task_id)
    return jsonify({"deleted": True}), 200


# ── Tags, checklist, comments ────────────────────────────────────────────


@task_bp.route("/tasks/<int:task_id>/tags", methods=["POST"])
def add_tag(task_id):
    data = request.get_json(silent=True) or {}
    tag = task_service.add_tag(task_id, data.get("name"))
    return jsonify({"id": tag.id, "task_id": tag.task_id, "name": tag.name}), 201


@task_bp.route("/tasks/<int:task_id>/tags/<name>", methods=["DELETE"])
def remove_tag(task_id, name):
    if not task_service.remove_tag(task_id, name):
        raise NotFoundError(resource="TaskTag", resource_id=name)
    return jsonify({"deleted": True}), 200


@task_bp.route("/tasks/<int:task_id>/checklist", methods=["GET"])
def get_checklist(task_id):
    return jsonify([i.to_dict() for i in task_service.get_checklist(task_id)]), 200


@task_bp.route("/tasks/<int:task_id>/checklist", methods=["POST"])
def add_checklist_item(task_id):
    data = request.get_json(silent=True) or {}
    return jsonify(task_service.add_checklist_item(task_id, data.get("text")).to_dict()), 201


@task_bp.route("/checklist/<int:item_id>", methods=["PUT"])
def set_checklist_item(item_id):
    """Body: { is_completed }"""
    data = request.get_json(silent=True) or {}
    item = task_service.set_checklist_item(item_id, bool(data.get("is_completed")))
    return jsonify(item.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/comments", methods=["POST"])
def add_comment(task_id):
    """Body: { content, parent_id?, author_id? }"""
    data = request.get_json(silent=True) or {}
    author_id = data.get("author_id") or current_actor()
    comment = task_service.add_comment(
        task_id,
        data.get("content"),
        author_id=int(author_id) if author_id and str(author_id).isdigit() else None,
        parent_id=data.get("parent_id"),
    )
    return jsonify(comment.to_dict()), 201


# ── Dependencies ─────────────────────────────────────────────────────────


@task_bp.route("/tasks/<int:task_id>/dependencies", methods=["GET"])
def list_dependencies(task_id):
    return jsonify([d.to_dict() for d in task_service.list_dependencies(task_id)]), 200


@task_bp.route("/tasks/<int:task_id>/dependencies", methods=["POST"])
def add_dependency(task_id):
    """Body: { depends_on_task_id }"""
    data = request.get_json(silent=True) or {}
    depends_on = parse_int(data.get("depends_on_task_id"), "depends_on_task_id")
    edge = task_service.add_dependency(task_id, depends_on)
    return jsonify(edge.to_dict()), 201


@task_bp.route("/dependencies/<int:dependency_id>", methods=["DELETE"])
def remove_dependency(dependency_id):
    if not task_service.remove_dependency(dependency_id):
        raise NotFoundError(resource="TaskDependency", resource_id=dependency_id)
    return jsonify({"deleted": True}), 200
