"""
Intranet Portal — Project Lifecycle Engine
Blueprint registry and shared request helpers.

Services raise the exceptions of ``portal.core.exceptions``; they are mapped
to JSON error responses once, here, for every blueprint.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from portal.core.exceptions import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    PermissionDenied,
    RejectedError,
    TransientStoreError,
    ValidationError,
)
from portal.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_role() -> str | None:
    """Caller role as resolved by the portal's session layer (``X-User-Role``)."""
    return request.headers.get("X-User-Role") or None


def current_actor() -> str | None:
    """Acting user id (``X-User-Id``), recorded in the audit trail."""
    return request.headers.get("X-User-Id") or None


def all_blueprints():
    from portal.blueprints.bug_bp import bug_bp
    from portal.blueprints.design_review_bp import design_review_bp
    from portal.blueprints.environment_bp import environment_bp
    from portal.blueprints.health_bp import health_bp
    from portal.blueprints.project_bp import project_bp
    from portal.blueprints.resource_bp import resource_bp
    from portal.blueprints.task_bp import task_bp
    from portal.blueprints.tech_stack_bp import tech_stack_bp
    from portal.blueprints.uat_bp import uat_bp

    return (
        health_bp,
        project_bp,
        tech_stack_bp,
        resource_bp,
        design_review_bp,
        environment_bp,
        task_bp,
        bug_bp,
        uat_bp,
    )


def register_error_handlers(app):
    """Map the service exception taxonomy to JSON responses."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(RejectedError)
    def _handle_rejected(error: RejectedError):
        return api_error(E.CONFLICT_STATE, str(error), details={"reasons": error.reasons})

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(DataIntegrityError)
    def _handle_integrity(error: DataIntegrityError):
        logger.error("Integrity fault endpoint=%s: %s details=%s", request.endpoint, error, error.details,
                     extra={"project_id": error.project_id, "event_type": "integrity"})
        return api_error(E.INTEGRITY, str(error))

    @app.errorhandler(TransientStoreError)
    def _handle_transient(error: TransientStoreError):
        logger.warning("Transient store failure endpoint=%s: %s", request.endpoint, error)
        return api_error(E.TRANSIENT, str(error))

    @app.errorhandler(404)
    def _handle_http_not_found(error):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _handle_method_not_allowed(error):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return {"error": error.description}, error.code
        logger.exception("Unexpected error endpoint=%s", request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
