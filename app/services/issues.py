# File: app/services/issues.py
"""Issue lifecycle rules.

Every mutation of an issue goes through this module: status transitions,
the upvote ledger, completion images and deletion. Each operation takes the
caller's ``Identity`` and enforces role/ownership itself, so routers stay thin.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, Forbidden, NotFound, ValidationError
from app.core.security import Identity
from app.db.base import utcnow
from app.models.comment import Comment
from app.models.issue import Issue, IssueCategory, IssueStatus
from app.models.upvote import IssueUpvote
from app.models.user import User, UserRole
from app.schemas.issue import IssueCreate, IssueOverride, IssueStatusPatch
from app.services.geo import haversine_km

logger = logging.getLogger(__name__)

ALL = "All"
DEFAULT_RADIUS_KM = 10.0
NEARBY_RADIUS_KM = 5.0
UPVOTE_ATTEMPTS = 2

# the only moves the status endpoint allows
NEXT_STATUS = {
    IssueStatus.pending: IssueStatus.in_progress,
    IssueStatus.in_progress: IssueStatus.resolved,
}
STRICT_STATUSES = (IssueStatus.pending, IssueStatus.in_progress, IssueStatus.resolved)


@dataclass
class UpvoteResult:
    issue_id: str
    upvote_count: int
    has_upvoted: bool


@dataclass
class BulkResult:
    matched: int
    modified: int


@dataclass
class IssueQuery:
    status: Optional[str] = None
    category: Optional[str] = None
    search: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_km: float = DEFAULT_RADIUS_KM
    sort: str = "recent"
    offset: int = 0
    limit: int = 20


def require_authority(identity: Identity, action: str) -> None:
    if not identity.is_authority:
        raise Forbidden(f"Only authorities can {action}")


def get_issue_or_404(db: Session, issue_id: str) -> Issue:
    issue = db.get(Issue, issue_id)
    if not issue:
        raise NotFound("Issue not found")
    return issue


def _check_assignee(db: Session, user_id: Optional[str]) -> None:
    if user_id is None:
        return
    assignee = db.get(User, user_id)
    if not assignee or assignee.role != UserRole.authority:
        raise ValidationError("assigned_to_id must reference an authority user")


def create_issue(db: Session, identity: Identity, payload: IssueCreate,
                 image_url: Optional[str] = None) -> Issue:
    now = utcnow()
    issue = Issue(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        location=payload.location,
        latitude=payload.latitude,
        longitude=payload.longitude,
        status=IssueStatus.pending,
        reported_by_id=identity.user_id,
        image_url=image_url,
        upvote_count=0,
        comment_count=0,
        created_at=now,
        updated_at=now,
    )
    db.add(issue)
    db.commit()
    db.refresh(issue)
    logger.info("Issue %s reported by %s (%s)", issue.id, identity.user_id, issue.category.value)
    return issue


def _toggle_once(db: Session, issue_id: str, user_id: str) -> UpvoteResult:
    now = utcnow()
    removed = db.execute(
        delete(IssueUpvote)
        .where(IssueUpvote.issue_id == issue_id, IssueUpvote.user_id == user_id)
    ).rowcount
    if removed:
        new_count = case((Issue.upvote_count > 0, Issue.upvote_count - 1), else_=0)
    else:
        db.add(IssueUpvote(issue_id=issue_id, user_id=user_id, created_at=now))
        db.flush()
        new_count = Issue.upvote_count + 1
    # count and set membership change inside one transaction
    db.execute(
        update(Issue)
        .where(Issue.id == issue_id)
        .values(upvote_count=new_count, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    count = db.execute(select(Issue.upvote_count).where(Issue.id == issue_id)).scalar_one()
    db.commit()
    return UpvoteResult(issue_id=issue_id, upvote_count=count, has_upvoted=not removed)


def toggle_upvote(db: Session, identity: Identity, issue_id: str) -> UpvoteResult:
    """Add the caller's upvote, or take it back if already present."""
    get_issue_or_404(db, issue_id)
    for attempt in range(1, UPVOTE_ATTEMPTS + 1):
        try:
            return _toggle_once(db, issue_id, identity.user_id)
        except IntegrityError:
            db.rollback()
            logger.warning(
                "Upvote conflict on issue %s for user %s (attempt %d)",
                issue_id, identity.user_id, attempt,
            )
    raise ConflictError("Upvote could not be recorded, please retry")


def update_status(db: Session, identity: Identity, issue_id: str, body: IssueStatusPatch) -> Issue:
    """Forward-only status change: Pending -> In Progress -> Resolved.

    Re-sending the current status is allowed, so the same call can update the
    assignment or priority alone.
    """
    require_authority(identity, "update issue status")
    issue = get_issue_or_404(db, issue_id)

    if body.status not in STRICT_STATUSES:
        raise ValidationError("Invalid status")
    if body.status != issue.status and NEXT_STATUS.get(issue.status) != body.status:
        raise ValidationError(
            f"Cannot move issue from {issue.status.value} to {body.status.value}"
        )

    fields = body.model_fields_set
    if "assigned_to_id" in fields:
        _check_assignee(db, body.assigned_to_id)
        issue.assigned_to_id = body.assigned_to_id
    if "priority" in fields:
        issue.priority = body.priority

    old_status = issue.status
    issue.status = body.status
    issue.updated_at = utcnow()
    db.commit()
    db.refresh(issue)
    if old_status != issue.status:
        logger.info("Issue %s moved %s -> %s by %s", issue.id, old_status.value,
                    issue.status.value, identity.user_id)
    return issue


def override_issue(db: Session, identity: Identity, issue_id: str, body: IssueOverride) -> Issue:
    """Authority override: any status, in any order, plus assignment and priority."""
    require_authority(identity, "update issues")
    issue = get_issue_or_404(db, issue_id)

    fields = body.model_fields_set
    if "status" in fields:
        if body.status is None:
            raise ValidationError("status cannot be null")
        if body.status != issue.status:
            logger.info("Issue %s status overridden %s -> %s by %s", issue.id,
                        issue.status.value, body.status.value, identity.user_id)
        issue.status = body.status
    if "assigned_to_id" in fields:
        _check_assignee(db, body.assigned_to_id)
        issue.assigned_to_id = body.assigned_to_id
    if "priority" in fields:
        issue.priority = body.priority

    issue.updated_at = utcnow()
    db.commit()
    db.refresh(issue)
    return issue


def set_completion_image(db: Session, identity: Identity, issue_id: str, url: str) -> Issue:
    require_authority(identity, "upload completion images")
    issue = get_issue_or_404(db, issue_id)
    issue.completion_image_url = url
    issue.updated_at = utcnow()
    db.commit()
    db.refresh(issue)
    return issue


def delete_issue(db: Session, identity: Identity, issue_id: str) -> None:
    """Reporter may delete while Pending; authorities may delete at any status.

    Comments and upvotes of the issue are removed with it.
    """
    issue = get_issue_or_404(db, issue_id)
    is_reporter = issue.reported_by_id == identity.user_id
    if not identity.is_authority and not (is_reporter and issue.status == IssueStatus.pending):
        raise Forbidden("Not authorized to delete this issue")

    db.execute(delete(Comment).where(Comment.issue_id == issue_id))
    db.execute(delete(IssueUpvote).where(IssueUpvote.issue_id == issue_id))
    db.delete(issue)
    db.commit()
    logger.info("Issue %s deleted by %s", issue_id, identity.user_id)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_filter(enum_cls, raw: Optional[str], label: str):
    if not raw or raw == ALL:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        raise ValidationError(f"Unknown {label}: {raw}")


def _ordering(sort: str):
    if sort == "upvotes":
        return (Issue.upvote_count.desc(), Issue.created_at.desc())
    if sort == "oldest":
        return (Issue.created_at.asc(),)
    return (Issue.created_at.desc(),)


def list_issues(db: Session, query: IssueQuery) -> tuple[list[Issue], int]:
    """Filter, search, radius-limit and sort issues. Returns (page, total)."""
    q = db.query(Issue)

    status = _parse_filter(IssueStatus, query.status, "status")
    if status:
        q = q.filter(Issue.status == status)
    category = _parse_filter(IssueCategory, query.category, "category")
    if category:
        q = q.filter(Issue.category == category)

    if query.search and query.search.strip():
        term = f"%{_escape_like(query.search.strip())}%"
        q = q.filter(
            Issue.title.ilike(term, escape="\\")
            | Issue.description.ilike(term, escape="\\")
            | Issue.location.ilike(term, escape="\\")
        )

    q = q.order_by(*_ordering(query.sort))

    if (query.lat is None) != (query.lng is None):
        raise ValidationError("lat and lng must be provided together")
    if query.lat is not None:
        if query.radius_km < 0:
            raise ValidationError("radius must be >= 0")
        located = q.filter(Issue.latitude.isnot(None), Issue.longitude.isnot(None)).all()
        within = [
            i for i in located
            if haversine_km(query.lat, query.lng, i.latitude, i.longitude) <= query.radius_km
        ]
        return within[query.offset:query.offset + query.limit], len(within)

    total = q.count()
    return q.offset(query.offset).limit(query.limit).all(), total


def nearby_issues(db: Session, lat: float, lng: float,
                  radius_km: float = NEARBY_RADIUS_KM) -> list[tuple[Issue, float]]:
    """Issues within radius_km of (lat, lng), closest first, with distance."""
    if radius_km < 0:
        raise ValidationError("radius must be >= 0")
    located = (
        db.query(Issue)
        .filter(Issue.latitude.isnot(None), Issue.longitude.isnot(None))
        .all()
    )
    found = []
    for issue in located:
        distance = haversine_km(lat, lng, issue.latitude, issue.longitude)
        if distance <= radius_km:
            found.append((issue, round(distance, 2)))
    found.sort(key=lambda pair: pair[1])
    return found


def my_issues(db: Session, identity: Identity) -> list[Issue]:
    return (
        db.query(Issue)
        .filter(Issue.reported_by_id == identity.user_id)
        .order_by(Issue.created_at.desc())
        .all()
    )


def bulk_update_status(db: Session, identity: Identity, issue_ids: list[str],
                       status: IssueStatus) -> BulkResult:
    """Set one status on many issues; unknown ids are ignored."""
    require_authority(identity, "perform bulk operations")
    if not issue_ids:
        raise ValidationError("issue_ids must be a non-empty list")
    if status not in STRICT_STATUSES:
        raise ValidationError("Invalid status")

    ids = list(dict.fromkeys(issue_ids))
    matched = db.query(func.count(Issue.id)).filter(Issue.id.in_(ids)).scalar() or 0
    modified = db.execute(
        update(Issue)
        .where(Issue.id.in_(ids))
        .values(status=status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    logger.info("Bulk status %s by %s: matched=%d modified=%d", status.value,
                identity.user_id, matched, modified)
    return BulkResult(matched=matched, modified=modified)


def upvoters_by_issue(db: Session, issue_ids: list[str]) -> dict[str, list[str]]:
    if not issue_ids:
        return {}
    rows = (
        db.query(IssueUpvote.issue_id, IssueUpvote.user_id)
        .filter(IssueUpvote.issue_id.in_(issue_ids))
        .order_by(IssueUpvote.created_at)
        .all()
    )
    out: dict[str, list[str]] = {}
    for issue_id, user_id in rows:
        out.setdefault(issue_id, []).append(user_id)
    return out
