# File: app/services/comments.py
import logging
from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.security import Identity
from app.db.base import utcnow
from app.models.comment import Comment
from app.models.issue import Issue
from app.models.user import User
from app.services.issues import get_issue_or_404

logger = logging.getLogger(__name__)

MAX_COMMENT_CHARS = 500


def _bump_comment_count(db: Session, issue_id: str, delta: int) -> None:
    if delta > 0:
        new_count = Issue.comment_count + delta
    else:
        new_count = case((Issue.comment_count > 0, Issue.comment_count + delta), else_=0)
    db.execute(
        update(Issue)
        .where(Issue.id == issue_id)
        .values(comment_count=new_count, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


def create_comment(db: Session, identity: Identity, issue_id: str, text: str) -> Comment:
    body = (text or "").strip()
    if not body:
        raise ValidationError("Comment text is required")
    if len(body) > MAX_COMMENT_CHARS:
        raise ValidationError(f"Comment cannot exceed {MAX_COMMENT_CHARS} characters")
    get_issue_or_404(db, issue_id)

    comment = Comment(
        issue_id=issue_id,
        author_id=identity.user_id,
        text=body,
        is_official=identity.is_authority,
        created_at=utcnow(),
    )
    db.add(comment)
    _bump_comment_count(db, issue_id, 1)
    db.commit()
    db.refresh(comment)
    return comment


def delete_comment(db: Session, identity: Identity, comment_id: str) -> None:
    comment = db.get(Comment, comment_id)
    if not comment:
        raise NotFound("Comment not found")
    if comment.author_id != identity.user_id and not identity.is_authority:
        raise Forbidden("Not authorized to delete this comment")
    issue_id = comment.issue_id
    db.delete(comment)
    _bump_comment_count(db, issue_id, -1)
    db.commit()
    logger.info("Comment %s on issue %s deleted by %s", comment_id, issue_id, identity.user_id)


def list_comments(db: Session, issue_id: str) -> list[tuple[Comment, User | None]]:
    """Comments of an issue with their authors, newest first."""
    get_issue_or_404(db, issue_id)
    return (
        db.query(Comment, User)
        .outerjoin(User, User.id == Comment.author_id)
        .filter(Comment.issue_id == issue_id)
        .order_by(Comment.created_at.desc())
        .all()
    )
