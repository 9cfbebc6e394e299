from __future__ import annotations

from datetime import timedelta

import pytest

from app.core.errors import Forbidden
from app.db.base import utcnow
from app.models.issue import Issue, IssueCategory, IssueStatus
from app.services.analytics import build_analytics

from conftest import identity_of


def _add(db, reporter, title, category=IssueCategory.roads, status=IssueStatus.pending,
         created_days_ago=0, updated_days_ago=None, upvotes=0) -> Issue:
    now = utcnow()
    created = now - timedelta(days=created_days_ago)
    updated = now - timedelta(days=updated_days_ago) if updated_days_ago is not None else created
    issue = Issue(
        title=title, description="d", category=category, location="somewhere",
        status=status, reported_by_id=reporter.id, upvote_count=upvotes,
        comment_count=0, created_at=created, updated_at=updated,
    )
    db.add(issue)
    db.commit()
    return issue


def test_analytics_is_authority_only(db, citizen) -> None:
    with pytest.raises(Forbidden):
        build_analytics(db, identity_of(citizen))


def test_analytics_on_empty_store(db, authority) -> None:
    stats = build_analytics(db, identity_of(authority))

    assert stats["total"] == 0
    assert stats["by_status"] == {"Pending": 0, "In Progress": 0, "Resolved": 0, "Rejected": 0}
    assert stats["by_category"] == []
    assert stats["avg_resolution_days"] == 0
    assert stats["top_upvoted"] == []


def test_analytics_aggregates(db, citizen, authority) -> None:
    _add(db, citizen, "old resolved", status=IssueStatus.resolved, created_days_ago=60, updated_days_ago=50, upvotes=1)
    _add(db, citizen, "recent resolved", status=IssueStatus.resolved, created_days_ago=10, updated_days_ago=5, upvotes=9)
    _add(db, citizen, "bin", category=IssueCategory.garbage, status=IssueStatus.in_progress, upvotes=4)
    _add(db, citizen, "light", category=IssueCategory.streetlights, created_days_ago=45)
    for n in range(4):
        _add(db, citizen, f"road {n}", upvotes=n)

    stats = build_analytics(db, identity_of(authority))

    assert stats["total"] == 8
    assert stats["by_status"]["Pending"] == 5
    assert stats["by_status"]["In Progress"] == 1
    assert stats["by_status"]["Resolved"] == 2
    assert stats["by_status"]["Rejected"] == 0
    assert stats["by_category"][0] == {"category": "Roads", "count": 6}
    assert {c["category"] for c in stats["by_category"][1:]} == {"Garbage", "Streetlights"}
    assert stats["created_last_30_days"] == 6
    assert stats["resolved_last_30_days"] == 1
    # (10 + 5) / 2 days, floored
    assert stats["avg_resolution_days"] == 7
    top = stats["top_upvoted"]
    assert len(top) == 5
    assert [t["upvote_count"] for t in top] == [9, 4, 3, 2, 1]
