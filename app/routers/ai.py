# File: app/routers/ai.py
from fastapi import APIRouter, Depends
from app.core.security import Identity, get_current_identity
from app.schemas.ai import (
    AnalyzePriorityIn,
    CheckDuplicatesIn,
    DuplicateCheckOut,
    ImproveDescriptionIn,
    ImproveDescriptionOut,
    PriorityAnalysisOut,
    SuggestTitleIn,
    TitleSuggestionsOut,
)
from app.services.ai_assist import AssistGateway, get_assist_gateway

# every answer is 200; a failed provider call shows up as available=false
router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/improve-description", response_model=ImproveDescriptionOut)
def improve_description(
    body: ImproveDescriptionIn,
    identity: Identity = Depends(get_current_identity),
    gateway: AssistGateway = Depends(get_assist_gateway),
):
    return gateway.improve_description(body)


@router.post("/check-duplicates", response_model=DuplicateCheckOut)
def check_duplicates(
    body: CheckDuplicatesIn,
    identity: Identity = Depends(get_current_identity),
    gateway: AssistGateway = Depends(get_assist_gateway),
):
    return gateway.check_duplicates(body)


@router.post("/analyze-priority", response_model=PriorityAnalysisOut)
def analyze_priority(
    body: AnalyzePriorityIn,
    identity: Identity = Depends(get_current_identity),
    gateway: AssistGateway = Depends(get_assist_gateway),
):
    return gateway.analyze_priority(body)


@router.post("/suggest-title", response_model=TitleSuggestionsOut)
def suggest_title(
    body: SuggestTitleIn,
    identity: Identity = Depends(get_current_identity),
    gateway: AssistGateway = Depends(get_assist_gateway),
):
    return gateway.suggest_titles(body)
