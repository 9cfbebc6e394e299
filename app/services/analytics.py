# File: app/services/analytics.py
from datetime import timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.security import Identity
from app.db.base import as_utc, utcnow
from app.models.issue import Issue, IssueStatus
from app.services.issues import require_authority

RECENT_DAYS = 30
TOP_UPVOTED = 5


def _avg_resolution_days(db: Session) -> int:
    rows = (
        db.query(Issue.created_at, Issue.updated_at)
        .filter(
            Issue.status == IssueStatus.resolved,
            Issue.created_at.isnot(None),
            Issue.updated_at.isnot(None),
        )
        .all()
    )
    if not rows:
        return 0
    total_secs = sum(
        (as_utc(updated) - as_utc(created)).total_seconds() for created, updated in rows
    )
    return int(total_secs / len(rows) // 86400)


def build_analytics(db: Session, identity: Identity) -> dict:
    """Read-only dashboard numbers, computed from current rows every call."""
    require_authority(identity, "view analytics")
    since = utcnow() - timedelta(days=RECENT_DAYS)

    total = db.query(func.count(Issue.id)).scalar() or 0

    by_status = {s.value: 0 for s in IssueStatus}
    for status, count in db.query(Issue.status, func.count(Issue.id)).group_by(Issue.status).all():
        by_status[status.value] = count

    by_category = [
        {"category": category.value, "count": count}
        for category, count in (
            db.query(Issue.category, func.count(Issue.id))
            .group_by(Issue.category)
            .order_by(func.count(Issue.id).desc())
            .all()
        )
    ]

    created_recent = db.query(func.count(Issue.id)).filter(Issue.created_at >= since).scalar() or 0
    resolved_recent = (
        db.query(func.count(Issue.id))
        .filter(Issue.status == IssueStatus.resolved, Issue.updated_at >= since)
        .scalar()
        or 0
    )

    top = (
        db.query(Issue)
        .order_by(Issue.upvote_count.desc(), Issue.created_at.desc())
        .limit(TOP_UPVOTED)
        .all()
    )

    return {
        "total": total,
        "by_status": by_status,
        "by_category": by_category,
        "created_last_30_days": created_recent,
        "resolved_last_30_days": resolved_recent,
        "avg_resolution_days": _avg_resolution_days(db),
        "top_upvoted": [
            {
                "id": i.id,
                "title": i.title,
                "status": i.status,
                "category": i.category,
                "upvote_count": i.upvote_count,
            }
            for i in top
        ],
    }
