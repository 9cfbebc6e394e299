# app/routers/issues_stats.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.core.security import Identity, require_role
from app.models.user import UserRole
from app.schemas.issue import AnalyticsOut
from app.services.analytics import build_analytics

router = APIRouter(prefix="/issues/stats", tags=["issues:stats"])

@router.get("/analytics", response_model=AnalyticsOut)
def analytics(db: Session = Depends(get_db), identity: Identity = Depends(require_role(UserRole.authority))):
    return build_analytics(db, identity)
