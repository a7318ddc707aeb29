"""Resource service — project documents, designs, assets and credentials.

Transaction policy: public functions call db.session.commit() on success.

Provides:
- Format / URL validation per resource type
- Upload (create) and re-upload (new version, approval reset)
- Approve / reject
- Per-type listing and required-resource check
"""
import logging
import re
from typing import Any
from urllib.parse import urlparse

from portal.core.clock import now
from portal.core.exceptions import NotFoundError, ValidationError
from portal.models import db
from portal.models.project import Project
from portal.models.resource import RESOURCE_TYPES, VALID_FILE_FORMATS, Resource
from portal.stores import resource_store
from portal.utils.helpers import commit_session, require_text, validate_enum

logger = logging.getLogger(__name__)

_FIGMA_URL = re.compile(r"^https?://(www\.)?figma\.com/(file|design|proto)/[a-zA-Z0-9]+", re.IGNORECASE)


# ═════════════════════════════════════════════════════════════════════════════
# Validation (pure)
# ═════════════════════════════════════════════════════════════════════════════


def get_file_extension(filename: str) -> str:
    parts = (filename or "").lower().rsplit(".", 1)
    return parts[1] if len(parts) == 2 else ""


def validate_file_format(resource_type: str, filename: str) -> str | None:
    """Return an error message if *filename* is not allowed for the type, else None."""
    allowed = VALID_FILE_FORMATS.get(resource_type, ())
    if not allowed:
        return None
    extension = get_file_extension(filename)
    if not extension:
        return "File must have an extension"
    if extension not in allowed:
        return f"Invalid file format '.{extension}' for {resource_type}"
    return None


def validate_figma_url(url: str | None) -> str | None:
    if not url:
        return "URL is required for Figma links"
    if not _FIGMA_URL.match(url):
        return "Invalid Figma URL format. Expected: https://figma.com/file/{fileKey}/..."
    return None


def validate_url(url: str | None) -> str | None:
    if not url:
        return "URL is required"
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return "Invalid URL format"
    return None


def validate_resource(resource_type: str, data: dict[str, Any]) -> list[str]:
    """All problems with a resource payload (empty list when valid)."""
    errors: list[str] = []
    filename = data.get("file_path")
    url = data.get("url")

    if resource_type == "figma_link":
        if err := validate_figma_url(url):
            errors.append(err)
    elif resource_type == "credential":
        if not data.get("encrypted_data"):
            errors.append("Encrypted data is required for credentials")
    else:
        if not filename and not url:
            errors.append("Either file_path or url is required")
        if filename and (err := validate_file_format(resource_type, filename)):
            errors.append(err)
        if url and (err := validate_url(url)):
            errors.append(err)
    return errors


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def _require_project(project_id: int) -> None:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)


def get_resource(resource_id: int) -> Resource:
    resource = resource_store.get(resource_id)
    if resource is None:
        raise NotFoundError(resource="Resource", resource_id=resource_id)
    return resource


def list_resources(project_id: int, *, resource_type: str | None = None) -> list[Resource]:
    _require_project(project_id)
    if resource_type:
        validate_enum(resource_type, RESOURCE_TYPES, "type")
        return resource_store.find_where(project_id, Resource.type == resource_type)
    return resource_store.find_all_by_project_id(project_id)


def create_resource(project_id: int, data: dict[str, Any]) -> Resource:
    """Upload a new resource (version 1, pending approval).

    Raises:
        ValidationError: Unknown type, missing name, bad format or URL.
    """
    _require_project(project_id)
    resource_type = require_text(data, "type")
    validate_enum(resource_type, RESOURCE_TYPES, "type")
    name = require_text(data, "name", max_len=255)

    errors = validate_resource(resource_type, data)
    if errors:
        raise ValidationError("; ".join(errors), details={"errors": errors})

    resource = resource_store.create(
        project_id=project_id,
        type=resource_type,
        name=name,
        file_path=data.get("file_path"),
        url=data.get("url"),
        encrypted_data=data.get("encrypted_data"),
        version=1,
        status="pending",
    )
    commit_session("create resource")
    logger.info("Resource uploaded id=%s type=%s", resource.id, resource_type,
                extra={"project_id": project_id, "event_type": "resource.create"})
    return resource


def reupload_resource(resource_id: int, data: dict[str, Any]) -> Resource:
    """Replace a resource's content: version + 1, back to pending, approval cleared."""
    resource = get_resource(resource_id)
    merged = {
        "file_path": data.get("file_path", resource.file_path),
        "url": data.get("url", resource.url),
        "encrypted_data": data.get("encrypted_data", resource.encrypted_data),
    }
    errors = validate_resource(resource.type, merged)
    if errors:
        raise ValidationError("; ".join(errors), details={"errors": errors})

    resource_store.update(resource_id, {
        **merged,
        "name": (data.get("name") or resource.name).strip(),
        "version": resource.version + 1,
        "status": "pending",
        "approved_by": None,
        "approved_at": None,
    })
    commit_session("re-upload resource")
    return resource


def approve_resource(resource_id: int, approver_id: int) -> Resource:
    resource = get_resource(resource_id)
    resource_store.update(resource_id, {
        "status": "approved",
        "approved_by": approver_id,
        "approved_at": now(),
    })
    commit_session("approve resource")
    logger.info("Resource approved id=%s type=%s", resource.id, resource.type,
                extra={"project_id": resource.project_id, "actor": approver_id,
                       "event_type": "resource.approve"})
    return resource


def reject_resource(resource_id: int) -> Resource:
    resource = get_resource(resource_id)
    resource_store.update(resource_id, {
        "status": "rejected",
        "approved_by": None,
        "approved_at": None,
    })
    commit_session("reject resource")
    return resource


def delete_resource(resource_id: int) -> None:
    get_resource(resource_id)
    resource_store.delete_by_id(resource_id)
    commit_session("delete resource")


def check_required_resources(project_id: int, required_types) -> dict:
    """Which of *required_types* have at least one approved resource."""
    approved = {
        r.type for r in resource_store.find_where(project_id, Resource.status == "approved")
    }
    missing = [t for t in required_types if t not in approved]
    return {"complete": not missing, "missing": missing}
