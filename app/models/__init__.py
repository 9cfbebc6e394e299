from app.models.user import User, UserRole
from app.models.issue import Issue, IssueStatus, IssueCategory, IssuePriority
from app.models.upvote import IssueUpvote
from app.models.comment import Comment

__all__ = [
    "User",
    "UserRole",
    "Issue",
    "IssueStatus",
    "IssueCategory",
    "IssuePriority",
    "IssueUpvote",
    "Comment",
]
