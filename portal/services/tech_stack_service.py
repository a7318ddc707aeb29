"""Tech stack service — compatibility checks and stack locking.

Transaction policy: public write functions call db.session.commit() on
success; lock / unlock / add run under the per-project mutex.

Compatibility is advisory while the stack is being assembled (an
incompatible item can still be added) and mandatory at lock time.

The compatibility table maps a technology name to the names it is known to
work with.  It comes from ``app.config["TECH_COMPATIBILITY"]`` and is only
ever read through a read-only view; every pure function also takes an
explicit ``table=`` override.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from flask import current_app, has_app_context

from portal.config import DEFAULT_TECH_COMPATIBILITY
from portal.core.clock import now
from portal.core.exceptions import NotFoundError, PermissionDenied, RejectedError
from portal.core.locks import project_mutex
from portal.models import db
from portal.models.audit import write_audit
from portal.models.project import Project
from portal.models.tech_stack import TECH_STACK_CATEGORIES, TechStackItem
from portal.services.permission import check_role, is_privileged
from portal.stores import tech_stack_store
from portal.utils.helpers import commit_session, require_text, validate_enum, validate_length

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("name", "version", "category")


@dataclass
class CompatibilityResult:
    is_compatible: bool = True
    compatible_with: list[str] = field(default_factory=list)
    incompatible_with: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_compatible": self.is_compatible,
            "compatible_with": list(self.compatible_with),
            "incompatible_with": list(self.incompatible_with),
            "warnings": list(self.warnings),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Compatibility (pure)
# ═════════════════════════════════════════════════════════════════════════════


def get_compatibility_table(table: Mapping | None = None) -> Mapping[str, tuple[str, ...]]:
    """Read-only compatibility table: *table* if given, else the app's configured one."""
    if table is None:
        if has_app_context():
            table = current_app.config.get("TECH_COMPATIBILITY", DEFAULT_TECH_COMPATIBILITY)
        else:
            table = DEFAULT_TECH_COMPATIBILITY
    return MappingProxyType({name: tuple(peers) for name, peers in table.items()})


def _field(item: Any, name: str):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def check_compatibility(new_item, existing_items, table: Mapping | None = None) -> CompatibilityResult:
    """Check *new_item* against every existing item of another category.

    Items are TechStackItem rows or dicts with ``name`` and ``category``.
    A technology without rules is compatible with a warning.  An existing
    item missing from the new item's list conflicts only when the existing
    item has rules of its own that do not list the new item.
    """
    rules = get_compatibility_table(table)
    new_name = _field(new_item, "name")
    new_category = _field(new_item, "category")
    result = CompatibilityResult()

    compatible_names = rules.get(new_name) or ()
    if not compatible_names:
        result.warnings.append(f"No compatibility rules defined for {new_name}")
        return result

    for existing in existing_items:
        if _field(existing, "category") == new_category:
            continue
        existing_name = _field(existing, "name")
        if existing_name in compatible_names:
            result.compatible_with.append(existing_name)
            continue
        reverse = rules.get(existing_name) or ()
        if reverse and new_name not in reverse:
            result.incompatible_with.append(existing_name)
            result.is_compatible = False

    return result


def get_compatibility_suggestions(category: str, existing_items, table: Mapping | None = None) -> list[str]:
    """Technologies that work with everything chosen so far.

    With nothing chosen yet, every technology that has rules is suggested.
    """
    rules = get_compatibility_table(table)
    existing_items = list(existing_items)
    if not existing_items:
        return sorted(rules)

    chosen = {_field(i, "name") for i in existing_items}
    suggestions: set[str] = set()
    for item in existing_items:
        suggestions.update(rules.get(_field(item, "name")) or ())
    return sorted(suggestions - chosen)


def validate_tech_stack(items, table: Mapping | None = None) -> tuple[bool, list[str]]:
    """Check every item against all the others; return (is_valid, issues)."""
    items = list(items)
    issues: list[str] = []
    for index, item in enumerate(items):
        others = items[:index] + items[index + 1:]
        result = check_compatibility(item, others, table=table)
        if not result.is_compatible:
            issues.append(
                f"{_field(item, 'name')} is incompatible with: {', '.join(result.incompatible_with)}"
            )
    return not issues, issues


# ═════════════════════════════════════════════════════════════════════════════
# Stack reads
# ═════════════════════════════════════════════════════════════════════════════


def _require_project(project_id: int) -> None:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)


def _get_item(item_id: int) -> TechStackItem:
    item = tech_stack_store.get(item_id)
    if item is None:
        raise NotFoundError(resource="TechStackItem", resource_id=item_id)
    return item


def list_tech_stack(project_id: int) -> list[TechStackItem]:
    _require_project(project_id)
    return tech_stack_store.find_all_by_project_id(project_id)


def is_tech_stack_locked(project_id: int) -> bool:
    """A stack is locked when it has items and every one of them is locked."""
    items = tech_stack_store.find_all_by_project_id(project_id)
    return bool(items) and all(i.is_locked for i in items)


def get_tech_stack_summary(project_id: int) -> dict:
    items = list_tech_stack(project_id)
    by_category: dict[str, list[str]] = {}
    for item in items:
        by_category.setdefault(item.category, []).append(item.name)
    is_valid, issues = validate_tech_stack(items)
    return {
        "total": len(items),
        "locked": sum(1 for i in items if i.is_locked),
        "is_locked": bool(items) and all(i.is_locked for i in items),
        "by_category": by_category,
        "is_valid": is_valid,
        "issues": issues,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Item writes
# ═════════════════════════════════════════════════════════════════════════════


def add_tech_stack_item(project_id: int, data: dict[str, Any]) -> tuple[TechStackItem, CompatibilityResult]:
    """Add a technology to an unlocked stack.

    Returns the new item and its (advisory) compatibility with the rest.

    Raises:
        RejectedError: The stack is locked.
    """
    name = require_text(data, "name", max_len=100)
    category = require_text(data, "category")
    validate_enum(category, TECH_STACK_CATEGORIES, "category")
    validate_length(data.get("version"), 50, "version")

    with project_mutex(project_id):
        _require_project(project_id)
        if is_tech_stack_locked(project_id):
            db.session.rollback()
            raise RejectedError(
                "Tech stack is locked. Request Manager approval to make changes.",
                reasons=["tech stack is locked"],
            )
        existing = tech_stack_store.find_all_by_project_id(project_id)
        compatibility = check_compatibility({"name": name, "category": category}, existing)
        item = tech_stack_store.create(
            project_id=project_id,
            category=category,
            name=name,
            version=data.get("version"),
        )
        commit_session("add tech stack item")

    if not compatibility.is_compatible:
        logger.info("Incompatible tech stack item added project=%s item=%s conflicts=%s",
                    project_id, name, compatibility.incompatible_with,
                    extra={"project_id": project_id, "event_type": "tech_stack.add"})
    return item, compatibility


def _guard_locked_item(item: TechStackItem, role: str | None, action: str) -> None:
    if item.is_locked and not is_privileged(role):
        logger.warning("Locked tech stack item %s: role %r may not %s", item.id, role, action,
                       extra={"project_id": item.project_id, "event_type": "tech_stack.denied"})
        raise PermissionDenied(role, action)


def update_tech_stack_item(
    item_id: int,
    updates: dict[str, Any],
    role: str | None,
    *,
    actor: str | None = None,
) -> TechStackItem:
    """Update an item; a locked item needs Manager/Admin and stays locked.

    For a locked item the change is applied as unlock → update → re-lock in
    one transaction, keeping the original ``locked_by`` and ``locked_at``.

    Raises:
        PermissionDenied: Item is locked and the role is not privileged.
        RejectedError: The edit would make a locked stack incompatible.
    """
    item = _get_item(item_id)
    _guard_locked_item(item, role, "update a locked tech stack item")

    partial = {k: v for k, v in updates.items() if k in _UPDATABLE_FIELDS}
    if "name" in partial:
        partial["name"] = require_text(partial, "name", max_len=100)
    if "category" in partial:
        validate_enum(partial["category"], TECH_STACK_CATEGORIES, "category")
    validate_length(partial.get("version"), 50, "version")

    with project_mutex(item.project_id):
        db.session.refresh(item)
        _guard_locked_item(item, role, "update a locked tech stack item")
        was_locked, locked_by, locked_at = item.is_locked, item.locked_by, item.locked_at
        old = {k: getattr(item, k) for k in partial}

        if was_locked and ("name" in partial or "category" in partial):
            # A locked stack stays compatible across edits
            edited = {"name": partial.get("name", item.name),
                      "category": partial.get("category", item.category)}
            others = [i for i in tech_stack_store.find_all_by_project_id(item.project_id) if i.id != item.id]
            is_valid, issues = validate_tech_stack([*others, edited])
            if not is_valid:
                db.session.rollback()
                logger.warning("Locked tech stack edit rejected item=%s issues=%s", item_id, issues,
                               extra={"project_id": item.project_id, "actor": actor,
                                      "event_type": "tech_stack.update_rejected"})
                raise RejectedError("Tech stack has compatibility issues", reasons=issues)

        if was_locked:
            tech_stack_store.update(item_id, {"is_locked": False})
        tech_stack_store.update(item_id, partial)
        if was_locked:
            tech_stack_store.update(item_id, {
                "is_locked": True,
                "locked_by": locked_by or "system",
                "locked_at": locked_at,
            })
            write_audit(
                entity_type="tech_stack",
                entity_id=item.id,
                action="update",
                actor=actor,
                project_id=item.project_id,
                diff={k: {"old": old[k], "new": partial[k]} for k in partial},
                timestamp=now(),
            )
        commit_session("update tech stack item")
    return item


def remove_tech_stack_item(item_id: int, role: str | None, *, actor: str | None = None) -> None:
    """Delete an item; a locked item needs Manager/Admin.

    Raises:
        PermissionDenied: Item is locked and the role is not privileged.
    """
    item = _get_item(item_id)
    _guard_locked_item(item, role, "remove a locked tech stack item")

    project_id = item.project_id
    with project_mutex(project_id):
        db.session.refresh(item)
        _guard_locked_item(item, role, "remove a locked tech stack item")
        if item.is_locked:
            tech_stack_store.update(item_id, {"is_locked": False})
            write_audit(
                entity_type="tech_stack",
                entity_id=item.id,
                action="delete",
                actor=actor,
                project_id=project_id,
                diff={"name": {"old": item.name, "new": None}},
                timestamp=now(),
            )
        tech_stack_store.delete_by_id(item_id)
        commit_session("remove tech stack item")


# ═════════════════════════════════════════════════════════════════════════════
# Lock / unlock
# ═════════════════════════════════════════════════════════════════════════════


def lock_tech_stack(project_id: int, locked_by: str, role: str | None) -> list[TechStackItem]:
    """Validate the whole stack and lock every item at once.

    Raises:
        PermissionDenied: Role is not Manager/Admin.
        RejectedError: Empty stack, or compatibility issues (all listed).
    """
    try:
        check_role(role, "lock the tech stack")
    except PermissionDenied:
        logger.warning("Tech stack lock denied project=%s role=%r", project_id, role,
                       extra={"project_id": project_id, "actor": locked_by,
                              "event_type": "tech_stack.denied"})
        raise

    with project_mutex(project_id):
        _require_project(project_id)
        items = tech_stack_store.find_all_by_project_id(project_id)
        if not items:
            db.session.rollback()
            raise RejectedError("Cannot lock tech stack", reasons=["tech stack is empty"])

        is_valid, issues = validate_tech_stack(items)
        if not is_valid:
            db.session.rollback()
            logger.warning("Tech stack lock rejected project=%s issues=%s", project_id, issues,
                           extra={"project_id": project_id, "actor": locked_by,
                                  "event_type": "tech_stack.lock_rejected"})
            raise RejectedError("Tech stack has compatibility issues", reasons=issues)

        locked_at = now()
        for item in items:
            item.is_locked = True
            item.locked_by = locked_by
            item.locked_at = locked_at
        write_audit(
            entity_type="tech_stack",
            entity_id=project_id,
            action="tech_stack.lock",
            actor=locked_by,
            project_id=project_id,
            diff={"items": [i.name for i in items]},
            timestamp=locked_at,
        )
        commit_session("lock tech stack")

    logger.info("Tech stack locked project=%s items=%d", project_id, len(items),
                extra={"project_id": project_id, "actor": locked_by,
                       "event_type": "tech_stack.lock"})
    return items


def unlock_tech_stack(project_id: int, role: str | None, *, actor: str | None = None) -> list[TechStackItem]:
    """Unlock every item of the stack.

    Raises:
        PermissionDenied: Role is not Manager/Admin.
    """
    try:
        check_role(role, "unlock the tech stack")
    except PermissionDenied:
        logger.warning("Tech stack unlock denied project=%s role=%r", project_id, role,
                       extra={"project_id": project_id, "actor": actor,
                              "event_type": "tech_stack.denied"})
        raise

    with project_mutex(project_id):
        _require_project(project_id)
        items = tech_stack_store.find_all_by_project_id(project_id)
        for item in items:
            item.is_locked = False
            item.locked_by = None
            item.locked_at = None
        write_audit(
            entity_type="tech_stack",
            entity_id=project_id,
            action="tech_stack.unlock",
            actor=actor,
            project_id=project_id,
            diff={"items": [i.name for i in items]},
            timestamp=now(),
        )
        commit_session("unlock tech stack")

    logger.info("Tech stack unlocked project=%s items=%d", project_id, len(items),
                extra={"project_id": project_id, "actor": actor,
                       "event_type": "tech_stack.unlock"})
    return items
