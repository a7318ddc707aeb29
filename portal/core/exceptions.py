"""
Lifecycle-engine exception hierarchy.

Services raise these; blueprints map them to HTTP responses once
(``portal.blueprints.register_error_handlers``).

Taxonomy:
  - NotFoundError        → 404  requested entity does not exist
  - ValidationError      → 422  well-formed input violating a business rule
  - RejectedError        → 409  expected, user-facing refusal carrying reasons
  - ConflictError        → 409  duplicate unique value
  - PermissionDenied     → 403  role-gated operation, insufficient role
  - DataIntegrityError   → 500  invariant broken in stored data (a defect)
  - TransientStoreError  → 503  store read/write failed; caller may retry

A phase transition with unmet requirements is NOT an exception: the executor
returns it as a normal ``TransitionResult``.

Usage:
    from portal.core.exceptions import NotFoundError, RejectedError

    raise NotFoundError(resource="Project", resource_id=42)
    raise RejectedError("Cannot lock tech stack", reasons=["tech stack is empty"])
"""


class NotFoundError(Exception):
    """Raised when a requested entity does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "Phase").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class RejectedError(ValidationError):
    """An expected refusal: the request is valid but the current state forbids it.

    Always carries the structured list of reasons (e.g. the tech stack is
    locked, UAT feedback is still pending).
    """

    def __init__(self, message: str, reasons: list[str] | None = None) -> None:
        self.reasons = list(reasons or [])
        super().__init__(message, details={"reasons": self.reasons})


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDenied(Exception):
    """Raised when the acting role may not perform a role-gated action."""

    def __init__(self, role: str | None, action: str) -> None:
        super().__init__(f"Role '{role or 'anonymous'}' is not permitted to {action}")
        self.role = role
        self.action = action


class DataIntegrityError(Exception):
    """Stored data violates a lifecycle invariant. Always a defect, never user error."""

    def __init__(self, message: str, project_id: int | None = None, details: dict | None = None) -> None:
        self.project_id = project_id
        self.details = details or {}
        super().__init__(message)


class NoActivePhaseError(DataIntegrityError):
    """A project that must have a current phase has none."""

    def __init__(self, project_id: int) -> None:
        super().__init__(f"Project id={project_id} has no active phase", project_id=project_id)


class TransientStoreError(Exception):
    """An entity-store read or write failed (connectivity, timeout, lock wait).

    Retryable. The engine itself never retries.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Store operation failed: {operation}"
        if cause is not None:
            msg += f" ({type(cause).__name__})"
        super().__init__(msg)
