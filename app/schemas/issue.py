from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from typing import Optional, List
from datetime import datetime

from app.core.errors import ValidationError
from app.models.issue import IssueCategory, IssueStatus, IssuePriority
from app.schemas.user import UserLite


def _coerce_enum(enum_cls, value, label: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"{label} must be one of: {allowed}")


class IssueCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=2000)
    category: IssueCategory
    location: str = Field(min_length=1, max_length=300)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("title", "description", "location", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return _coerce_enum(IssueCategory, v, "category")

    @model_validator(mode="after")
    def _coordinates_pair(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self


def parse_issue_create(data: dict) -> IssueCreate:
    """Validate raw form input, surfacing problems as a 400 ValidationError."""
    try:
        return IssueCreate.model_validate(data)
    except PydanticValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "Invalid input").removeprefix("Value error, ")
        raise ValidationError(f"{field}: {msg}" if field else msg)


class IssueOut(BaseModel):
    id: str
    title: str
    description: str
    category: IssueCategory
    status: IssueStatus
    priority: Optional[IssuePriority] = None

    location: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    reported_by_id: str
    reported_by: Optional[UserLite] = None
    assigned_to_id: Optional[str] = None

    image_url: Optional[str] = None
    completion_image_url: Optional[str] = None

    upvote_count: int = 0
    upvoted_by: List[str] = []
    comment_count: int = 0

    created_at: datetime
    updated_at: datetime

    # only set by the nearby listing
    distance_km: Optional[float] = None


class PaginatedIssuesOut(BaseModel):
    items: list[IssueOut]
    total: int
    offset: int
    limit: int


class _StatusFields(BaseModel):
    assigned_to_id: Optional[str] = None
    priority: Optional[IssuePriority] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return _coerce_enum(IssuePriority, v, "priority")


class IssueStatusPatch(_StatusFields):
    status: IssueStatus

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return _coerce_enum(IssueStatus, v, "status")


class IssueOverride(_StatusFields):
    status: Optional[IssueStatus] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return _coerce_enum(IssueStatus, v, "status")


class UpvoteOut(BaseModel):
    issue_id: str
    upvote_count: int
    has_upvoted: bool
    message: str


class BulkStatusIn(BaseModel):
    issue_ids: List[str] = Field(min_length=1)
    status: IssueStatus

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return _coerce_enum(IssueStatus, v, "status")


class BulkStatusOut(BaseModel):
    matched: int
    modified: int


class CategoryCount(BaseModel):
    category: str
    count: int


class TopIssue(BaseModel):
    id: str
    title: str
    status: IssueStatus
    category: IssueCategory
    upvote_count: int


class AnalyticsOut(BaseModel):
    total: int
    by_status: dict[str, int]
    by_category: list[CategoryCount]
    created_last_30_days: int
    resolved_last_30_days: int
    avg_resolution_days: int
    top_upvoted: list[TopIssue]
