# File: app/routers/comments.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.base import as_utc
from app.db.session import get_db
from app.models.comment import Comment
from app.models.user import User
from app.schemas.comment import CommentCreate, CommentOut
from app.schemas.user import UserLite
from app.core.security import Identity, get_current_identity
from app.services import comments as svc

router = APIRouter(tags=["comments"])


def _comment_out(comment: Comment, author: User | None) -> CommentOut:
    return CommentOut(
        id=comment.id,
        issue_id=comment.issue_id,
        author_id=comment.author_id,
        author=UserLite(id=author.id, name=author.name, role=author.role.value) if author else None,
        text=comment.text,
        is_official=comment.is_official,
        created_at=as_utc(comment.created_at),
    )


@router.get("/issues/{issue_id}/comments", response_model=list[CommentOut])
def list_comments(issue_id: str, db: Session = Depends(get_db)):
    return [_comment_out(c, u) for c, u in svc.list_comments(db, issue_id)]


@router.post("/issues/{issue_id}/comments", response_model=CommentOut, status_code=201)
def add_comment(
    issue_id: str,
    body: CommentCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    comment = svc.create_comment(db, identity, issue_id, body.text)
    return _comment_out(comment, db.get(User, identity.user_id))


@router.delete("/comments/{comment_id}")
def delete_comment(comment_id: str, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    svc.delete_comment(db, identity, comment_id)
    return {"ok": True, "message": "Comment deleted successfully"}
