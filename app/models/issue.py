# File: app/models/issue.py
# Project: smart-city-tracker-backend

from __future__ import annotations
from enum import Enum as PyEnum
from datetime import datetime
from sqlalchemy import String, Float, Enum, Integer, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, new_id, utcnow


def _norm(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


class _LenientEnum(PyEnum):
    """Accepts 'In Progress', 'InProgress', 'in_progress' alike."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            wanted = _norm(value)
            for member in cls:
                if _norm(member.value) == wanted or _norm(member.name) == wanted:
                    return member
        return None


class IssueStatus(_LenientEnum):
    pending = "Pending"
    in_progress = "In Progress"
    resolved = "Resolved"
    rejected = "Rejected"


class IssueCategory(_LenientEnum):
    roads = "Roads"
    water_supply = "Water Supply"
    electricity = "Electricity"
    garbage = "Garbage"
    streetlights = "Streetlights"
    drainage = "Drainage"
    parks = "Parks"
    public_transport = "Public Transport"
    noise_pollution = "Noise Pollution"
    other = "Other"


class IssuePriority(_LenientEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class Issue(Base):
    __tablename__ = "issues"
    __table_args__ = (
        CheckConstraint("upvote_count >= 0", name="ck_issues_upvote_count_nonneg"),
        CheckConstraint("comment_count >= 0", name="ck_issues_comment_count_nonneg"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str] = mapped_column(String(2000))
    category: Mapped[IssueCategory] = mapped_column(Enum(IssueCategory, native_enum=False, length=30), index=True)
    status: Mapped[IssueStatus] = mapped_column(
        Enum(IssueStatus, native_enum=False, length=20), default=IssueStatus.pending, index=True
    )
    priority: Mapped[IssuePriority | None] = mapped_column(
        Enum(IssuePriority, native_enum=False, length=20), nullable=True
    )

    location: Mapped[str] = mapped_column(String(300))
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    reported_by_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    assigned_to_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)

    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    completion_image_url: Mapped[str | None] = mapped_column(String, nullable=True)

    upvote_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", index=True)
    comment_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

Index("ix_issues_lat_lng", Issue.latitude, Issue.longitude)
Index("ix_issues_status_category_created", Issue.status, Issue.category, Issue.created_at)
