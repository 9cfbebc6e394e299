from typing import List, Optional
from pydantic import BaseModel, Field

UNAVAILABLE_MESSAGE = "AI suggestion unavailable"


class ImproveDescriptionIn(BaseModel):
    description: str = Field(min_length=1, max_length=2000)
    title: Optional[str] = None
    category: Optional[str] = None


class ImproveDescriptionOut(BaseModel):
    available: bool
    improved_text: str
    message: Optional[str] = None


class ExistingIssue(BaseModel):
    id: str
    title: str
    description: str = ""
    location: Optional[str] = None
    status: Optional[str] = None


class CheckDuplicatesIn(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    location: Optional[str] = None
    existing_issues: List[ExistingIssue] = []


class DuplicateCheckOut(BaseModel):
    available: bool
    is_duplicate: bool = False
    matched_issue_id: Optional[str] = None
    confidence: int = 0
    reason: str = ""
    message: Optional[str] = None


class AnalyzePriorityIn(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    upvote_count: int = Field(default=0, ge=0)


class PriorityAnalysisOut(BaseModel):
    available: bool
    urgency_score: int
    sentiment: str
    priority: str
    suggested_action: str
    estimated_impact: str
    message: Optional[str] = None


class SuggestTitleIn(BaseModel):
    partial_title: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1)


class TitleSuggestionsOut(BaseModel):
    available: bool
    suggestions: List[str] = []
    message: Optional[str] = None
