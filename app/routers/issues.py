# File: app/routers/issues.py
from fastapi import APIRouter, Depends, Query, UploadFile, File, Request, Form
from sqlalchemy.orm import Session
from typing import Optional
from app.db.base import as_utc
from app.db.session import get_db
from app.models.issue import Issue
from app.models.user import User, UserRole
from app.schemas.issue import (
    IssueOut,
    PaginatedIssuesOut,
    IssueStatusPatch,
    IssueOverride,
    UpvoteOut,
    BulkStatusIn,
    BulkStatusOut,
    parse_issue_create,
)
from app.schemas.user import UserLite
from app.core.ratelimit import limiter
from app.core.security import Identity, get_current_identity, require_role
from app.services import issues as svc
from app.services.storage import read_upload, store_image

router = APIRouter(prefix="/issues", tags=["issues"])


def _issues_out(db: Session, issues: list[Issue], distances: Optional[dict] = None) -> list[IssueOut]:
    """Batch-load reporters and upvoters, then build the response rows."""
    ids = [i.id for i in issues]
    upvoters = svc.upvoters_by_issue(db, ids)
    reporter_ids = {i.reported_by_id for i in issues}
    reporters = (
        {u.id: u for u in db.query(User).filter(User.id.in_(reporter_ids)).all()}
        if reporter_ids else {}
    )
    out = []
    for i in issues:
        reporter = reporters.get(i.reported_by_id)
        out.append(IssueOut(
            id=i.id,
            title=i.title,
            description=i.description,
            category=i.category,
            status=i.status,
            priority=i.priority,
            location=i.location,
            latitude=i.latitude,
            longitude=i.longitude,
            reported_by_id=i.reported_by_id,
            reported_by=UserLite(id=reporter.id, name=reporter.name, role=reporter.role.value) if reporter else None,
            assigned_to_id=i.assigned_to_id,
            image_url=i.image_url,
            completion_image_url=i.completion_image_url,
            upvote_count=i.upvote_count,
            upvoted_by=upvoters.get(i.id, []),
            comment_count=i.comment_count,
            created_at=as_utc(i.created_at),
            updated_at=as_utc(i.updated_at),
            distance_km=(distances or {}).get(i.id),
        ))
    return out


def _issue_out(db: Session, issue: Issue) -> IssueOut:
    return _issues_out(db, [issue])[0]


@router.post("", response_model=IssueOut, status_code=201)
@limiter.limit("10/minute")
def create_issue(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    category: str = Form(""),
    location: str = Form(""),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    image: UploadFile | None = File(default=None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    payload = parse_issue_create({
        "title": title,
        "description": description,
        "category": category,
        "location": location,
        "latitude": latitude,
        "longitude": longitude,
    })
    image_url = None
    if image is not None and image.filename:
        data = read_upload(image.file)
        image_url = store_image(data, image.content_type, image.filename, f"issues/{identity.user_id}")
    issue = svc.create_issue(db, identity, payload, image_url=image_url)
    return _issue_out(db, issue)


@router.get("", response_model=PaginatedIssuesOut)
@limiter.limit("60/minute")
def list_issues(
    request: Request,
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius: float = Query(svc.DEFAULT_RADIUS_KM),
    sort: str = Query("recent", pattern="^(recent|oldest|upvotes)$"),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    query = svc.IssueQuery(
        status=status, category=category, search=search,
        lat=lat, lng=lng, radius_km=radius,
        sort=sort, offset=offset, limit=limit,
    )
    items, total = svc.list_issues(db, query)
    return PaginatedIssuesOut(items=_issues_out(db, items), total=total, offset=offset, limit=limit)


@router.get("/nearby", response_model=list[IssueOut])
def nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(svc.NEARBY_RADIUS_KM),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    found = svc.nearby_issues(db, lat, lng, radius)
    return _issues_out(db, [i for i, _ in found], {i.id: d for i, d in found})


@router.get("/user/my-issues", response_model=list[IssueOut])
def my_issues(db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    return _issues_out(db, svc.my_issues(db, identity))


@router.post("/bulk/status", response_model=BulkStatusOut)
def bulk_status(
    body: BulkStatusIn,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_role(UserRole.authority)),
):
    result = svc.bulk_update_status(db, identity, body.issue_ids, body.status)
    return BulkStatusOut(matched=result.matched, modified=result.modified)


@router.get("/{issue_id}", response_model=IssueOut)
def get_issue(issue_id: str, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    return _issue_out(db, svc.get_issue_or_404(db, issue_id))


@router.patch("/{issue_id}/status", response_model=IssueOut)
def update_status(
    issue_id: str,
    body: IssueStatusPatch,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    return _issue_out(db, svc.update_status(db, identity, issue_id, body))


@router.put("/{issue_id}", response_model=IssueOut)
def override_issue(
    issue_id: str,
    body: IssueOverride,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    return _issue_out(db, svc.override_issue(db, identity, issue_id, body))


@router.put("/{issue_id}/upvote", response_model=UpvoteOut)
def toggle_upvote(issue_id: str, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    result = svc.toggle_upvote(db, identity, issue_id)
    return UpvoteOut(
        issue_id=result.issue_id,
        upvote_count=result.upvote_count,
        has_upvoted=result.has_upvoted,
        message="Issue upvoted" if result.has_upvoted else "Upvote removed",
    )


@router.put("/{issue_id}/completion-image", response_model=IssueOut)
def upload_completion_image(
    issue_id: str,
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    svc.require_authority(identity, "upload completion images")
    svc.get_issue_or_404(db, issue_id)
    url = store_image(read_upload(image.file), image.content_type, image.filename, f"completions/{issue_id}")
    return _issue_out(db, svc.set_completion_image(db, identity, issue_id, url))


@router.delete("/{issue_id}")
def delete_issue(issue_id: str, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    svc.delete_issue(db, identity, issue_id)
    return {"ok": True, "message": "Issue deleted successfully"}
