"""Design review service — client review of wireframes, mockups and Figma links.

Transaction policy: public write functions commit on success; every write
runs under the per-project mutex.

Approving a review also approves its resource and pins the reviewed
version; rejecting one rejects the resource.  Requesting changes leaves the
resource untouched.
"""
import logging

from portal.core.clock import now
from portal.core.exceptions import NotFoundError, RejectedError, ValidationError
from portal.core.locks import project_mutex
from portal.models import db
from portal.models.design_review import REVIEW_STATUSES, REVIEWABLE_STATUSES, DesignReview
from portal.models.project import Project
from portal.models.resource import DESIGN_RESOURCE_TYPES
from portal.stores import design_review_store, resource_store
from portal.utils.helpers import commit_session, parse_int

logger = logging.getLogger(__name__)


def _require_project(project_id: int) -> None:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)


def get_review(review_id: int) -> DesignReview:
    review = design_review_store.get(review_id)
    if review is None:
        raise NotFoundError(resource="DesignReview", resource_id=review_id)
    return review


def list_reviews(project_id: int) -> list[DesignReview]:
    _require_project(project_id)
    return design_review_store.find_all_by_project_id(project_id)


def get_review_stats(project_id: int) -> dict:
    """Review counts per status plus the total."""
    _require_project(project_id)
    stats = {status: 0 for status in REVIEW_STATUSES}
    for review in design_review_store.find_all_by_project_id(project_id):
        stats[review.status] += 1
    stats["total"] = sum(stats.values())
    return stats


def is_design_approved(project_id: int) -> bool:
    return bool(design_review_store.count_where(project_id, DesignReview.status == "approved"))


def can_frontend_tasks_proceed(project_id: int) -> dict:
    """Frontend work waits for at least one approved design review."""
    _require_project(project_id)
    if is_design_approved(project_id):
        return {"can_proceed": True, "reason": None}
    return {
        "can_proceed": False,
        "reason": "Design must be approved before Frontend tasks can proceed",
    }


def create_review(project_id: int, resource_id) -> DesignReview:
    """Open a review for a design resource of the project.

    Raises:
        NotFoundError: Unknown project or resource.
        ValidationError: Resource of another project, or not a design type.
        RejectedError: The resource already has a pending review.
    """
    _require_project(project_id)
    resource_id = parse_int(resource_id, "resource_id")
    resource = resource_store.get(resource_id)
    if resource is None:
        raise NotFoundError(resource="Resource", resource_id=resource_id)
    if resource.project_id != project_id:
        raise ValidationError(
            "Resource does not belong to this project", details={"resource_id": resource_id},
        )
    if resource.type not in DESIGN_RESOURCE_TYPES:
        raise ValidationError(
            "Resource is not a design type",
            details={"type": resource.type, "allowed": sorted(DESIGN_RESOURCE_TYPES)},
        )

    with project_mutex(project_id):
        pending = design_review_store.count_where(
            project_id,
            DesignReview.resource_id == resource_id,
            DesignReview.status == "pending",
        )
        if pending:
            db.session.rollback()
            raise RejectedError(
                "Cannot create design review",
                reasons=["A pending review already exists for this resource"],
            )
        review = design_review_store.create(
            project_id=project_id,
            resource_id=resource_id,
            status="pending",
        )
        commit_session("create design review")

    logger.info("Design review opened id=%s resource=%s", review.id, resource_id,
                extra={"project_id": project_id, "event_type": "design_review.create"})
    return review


def _require_reviewable(review: DesignReview, allowed=REVIEWABLE_STATUSES) -> None:
    if review.status not in allowed:
        db.session.rollback()
        raise RejectedError(
            "Review is not in a reviewable state",
            reasons=[f"review is {review.status}"],
        )


def _require_comments(comments: str | None, action: str) -> str:
    if not comments or not comments.strip():
        raise ValidationError(
            f"Comments are required when {action}", details={"comments": "required"},
        )
    return comments.strip()


def approve_review(review_id: int, reviewer_id: int, comments: str | None = None) -> DesignReview:
    """Approve a pending or change-requested review and its resource.

    Raises:
        NotFoundError: Unknown review, or its resource is gone.
        RejectedError: Review already approved or rejected.
    """
    review = get_review(review_id)
    with project_mutex(review.project_id):
        db.session.refresh(review)
        _require_reviewable(review)
        resource = resource_store.get(review.resource_id)
        if resource is None:
            raise NotFoundError(resource="Resource", resource_id=review.resource_id)

        reviewed_at = now()
        design_review_store.update(review_id, {
            "status": "approved",
            "reviewer_id": reviewer_id,
            "reviewed_at": reviewed_at,
            "version_locked": resource.version,
            "comments": comments or None,
        })
        resource_store.update(resource.id, {
            "status": "approved",
            "approved_by": reviewer_id,
            "approved_at": reviewed_at,
        })
        commit_session("approve design review")

    logger.info("Design review approved id=%s resource=%s v%s", review.id, resource.id,
                resource.version,
                extra={"project_id": review.project_id, "actor": reviewer_id,
                       "event_type": "design_review.approve"})
    return review


def reject_review(review_id: int, reviewer_id: int, comments: str | None) -> DesignReview:
    """Reject a review and its resource; comments are mandatory."""
    comments = _require_comments(comments, "rejecting")
    review = get_review(review_id)
    with project_mutex(review.project_id):
        db.session.refresh(review)
        _require_reviewable(review)
        design_review_store.update(review_id, {
            "status": "rejected",
            "reviewer_id": reviewer_id,
            "reviewed_at": now(),
            "comments": comments,
        })
        resource_store.update(review.resource_id, {
            "status": "rejected",
            "approved_by": None,
            "approved_at": None,
        })
        commit_session("reject design review")
    return review


def request_changes(review_id: int, reviewer_id: int, comments: str | None) -> DesignReview:
    """Send a pending review back for changes; comments are mandatory."""
    comments = _require_comments(comments, "requesting changes")
    review = get_review(review_id)
    with project_mutex(review.project_id):
        db.session.refresh(review)
        _require_reviewable(review, allowed={"pending"})
        design_review_store.update(review_id, {
            "status": "change_requested",
            "reviewer_id": reviewer_id,
            "reviewed_at": now(),
            "comments": comments,
        })
        commit_session("request design changes")
    return review
