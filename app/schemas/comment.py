from datetime import datetime
from pydantic import BaseModel, Field
from app.schemas.user import UserLite

class CommentCreate(BaseModel):
    # emptiness and length are checked by the comment service so both
    # surface as a 400 validation_error
    text: str = Field(default="")

class CommentOut(BaseModel):
    id: str
    issue_id: str
    author_id: str
    author: UserLite | None = None
    text: str
    is_official: bool
    created_at: datetime
