"""
Function endpoints.

Paths mirror the hosted function URLs the web client already calls
(`/functions/v1/<name>`), so the client only needs a new base URL.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from timelineforge.agents.evidence_collector import EvidenceCollector
from timelineforge.agents.hypothesis_tester import HypothesisTester
from timelineforge.agents.marathon_investigator import MarathonInvestigator
from timelineforge.agents.monitor_scheduler import MonitorScheduler
from timelineforge.agents.vision_analyzer import VisionAnalyzer
from timelineforge.api.deps import (
    get_current_user,
    get_image_fetcher,
    get_llm,
    get_vision_llm,
    get_web_search,
)
from timelineforge.api.schemas import (
    EvidenceSearchRequest,
    HypothesisTestRequest,
    InvestigationRequest,
    VisionRequest,
)
from timelineforge.auth import AuthenticatedUser
from timelineforge.config import settings
from timelineforge.confidence.credibility_scorer import CredibilityScorer
from timelineforge.environments.web.fetch import ImageFetcher
from timelineforge.environments.web.search import WebSearch
from timelineforge.errors import AuthorizationError
from timelineforge.storage.db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1")


@router.post("/marathon-investigator")
def marathon_investigator(
    payload: InvestigationRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
    search: WebSearch = Depends(get_web_search),
    llm: Callable[..., str] = Depends(get_llm),
) -> dict:
    if payload.isContinuous:
        logger.info("Continuous mode requested for %s; running a single pass", payload.eventId)
    investigator = MarathonInvestigator(db=db, search_client=search, llm=llm)
    return investigator.run(payload.eventId, user_id=user.id)


@router.post("/evidence-collector")
def evidence_collector(
    payload: EvidenceSearchRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    search: WebSearch = Depends(get_web_search),
    llm: Callable[..., str] = Depends(get_llm),
) -> dict:
    collector = EvidenceCollector(
        search_client=search,
        credibility_scorer=CredibilityScorer(llm=llm),
    )
    return collector.collect(
        query=payload.query,
        event_title=payload.eventTitle,
        branch_name=payload.branchName,
        max_results=payload.maxResults,
    )


@router.post("/gemini-vision")
def gemini_vision(
    payload: VisionRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
    llm_image: Callable[..., str] = Depends(get_vision_llm),
    fetcher: ImageFetcher = Depends(get_image_fetcher),
) -> dict:
    analyzer = VisionAnalyzer(db=db, llm_image=llm_image, fetcher=fetcher)
    return analyzer.analyze(
        analysis_type=payload.analysisType,
        image_url=payload.imageUrl,
        image_base64=payload.imageBase64,
        prompt=payload.prompt,
        claim=payload.claim,
        evidence_id=payload.evidenceId,
        user_id=user.id,
    )


@router.post("/hypothesis-tester")
def hypothesis_tester(
    payload: HypothesisTestRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
    search: WebSearch = Depends(get_web_search),
    llm: Callable[..., str] = Depends(get_llm),
) -> dict:
    tester = HypothesisTester(db=db, search_client=search, llm=llm)
    return tester.test(payload.hypothesisId, user_id=user.id)


@router.post("/monitor-scheduler")
def monitor_scheduler(
    db: Session = Depends(get_db),
    search: WebSearch = Depends(get_web_search),
    llm: Callable[..., str] = Depends(get_llm),
    x_scheduler_token: Optional[str] = Header(default=None, alias="X-Scheduler-Token"),
) -> dict:
    required = settings.scheduler_token
    if required and x_scheduler_token != required:
        raise AuthorizationError("Bad or missing scheduler token")

    def build_investigator(session: Session) -> MarathonInvestigator:
        return MarathonInvestigator(db=session, search_client=search, llm=llm)

    return MonitorScheduler(db=db, investigator_factory=build_investigator).run()
