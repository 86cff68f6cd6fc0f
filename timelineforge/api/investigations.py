"""
Timeline CRUD and the per-event change stream.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from timelineforge.agents.branch_merger import BranchMerger
from timelineforge.api.deps import get_current_user, load_owned_event
from timelineforge.api.schemas import (
    BranchCreateRequest,
    BranchOut,
    EventCreateRequest,
    EventDetailResponse,
    EventOut,
    EvidenceCreateRequest,
    EvidenceOut,
    HypothesisOut,
    InvestigationLogOut,
    MergeOut,
    MergeRequest,
)
from timelineforge.auth import AuthenticatedUser
from timelineforge.config import settings
from timelineforge.errors import NotFoundError, ValidationError
from timelineforge.storage.change_feed import change_feed
from timelineforge.storage.db import get_db
from timelineforge.storage.repositories.branch_repo import BRANCH_COLORS, BranchRepository
from timelineforge.storage.repositories.event_repo import EventRepository
from timelineforge.storage.repositories.evidence_repo import EvidenceRepository
from timelineforge.storage.repositories.hypothesis_repo import HypothesisRepository
from timelineforge.storage.repositories.investigation_log_repo import InvestigationLogRepository
from timelineforge.storage.repositories.merge_repo import MergeRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

KEEPALIVE_SECONDS = 15


@router.post("/events", response_model=EventOut, status_code=201)
def create_event(
    payload: EventCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> EventOut:
    event = EventRepository.create(
        db=db,
        user_id=user.id,
        title=payload.title,
        description=payload.description,
        total_phases=settings.TOTAL_PHASES,
    )
    BranchRepository.create_main(db=db, event_id=event.id)
    db.refresh(event)
    logger.info("Created event %s for user %s", event.id, user.id)
    return EventOut.model_validate(event)


@router.get("/events", response_model=List[EventOut])
def list_events(
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> List[EventOut]:
    return [EventOut.model_validate(e) for e in EventRepository.list_by_user(db=db, user_id=user.id)]


@router.get("/events/{event_id}", response_model=EventDetailResponse)
def get_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> EventDetailResponse:
    event = load_owned_event(db, event_id, user)
    branches = BranchRepository.list_by_event(db=db, event_id=event_id)
    evidence = EvidenceRepository.list_by_event(db=db, event_id=event_id)
    hypotheses = HypothesisRepository.list_by_branches(db=db, branch_ids=[b.id for b in branches])
    logs = InvestigationLogRepository.list_by_event(db=db, event_id=event_id, limit=50)
    merges = MergeRepository.list_by_event(db=db, event_id=event_id)
    return EventDetailResponse(
        event=EventOut.model_validate(event),
        branches=[BranchOut.model_validate(b) for b in branches],
        evidence=[EvidenceOut.model_validate(e) for e in evidence],
        hypotheses=[HypothesisOut.model_validate(h) for h in hypotheses],
        logs=[InvestigationLogOut.model_validate(l) for l in logs],
        merges=[MergeOut.model_validate(m) for m in merges],
    )


@router.post("/events/{event_id}/reset", response_model=EventOut)
def reset_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> EventOut:
    event = load_owned_event(db, event_id, user)
    EventRepository.reset(db=db, event_id=event_id)
    db.refresh(event)
    return EventOut.model_validate(event)


@router.delete("/events/{event_id}", status_code=204)
def delete_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    load_owned_event(db, event_id, user)
    EventRepository.delete(db=db, event_id=event_id)
    logger.info("Deleted event %s", event_id)
    return Response(status_code=204)


@router.post("/events/{event_id}/branches", response_model=BranchOut, status_code=201)
def create_branch(
    event_id: UUID,
    payload: BranchCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> BranchOut:
    load_owned_event(db, event_id, user)
    existing = BranchRepository.list_by_event(db=db, event_id=event_id)
    if any(b.name.lower() == payload.name.lower() for b in existing):
        raise ValidationError(
            f"Branch {payload.name!r} already exists",
            public_message="A branch with that name already exists",
        )

    branch = BranchRepository.create(
        db=db,
        event_id=event_id,
        name=payload.name,
        description=payload.description,
        color=payload.color or BRANCH_COLORS[len(existing) % len(BRANCH_COLORS)],
        position_z=len(existing) * 4,
        is_main=False,
    )
    return BranchOut.model_validate(branch)


@router.delete("/events/{event_id}/branches/{branch_id}", status_code=204)
def delete_branch(
    event_id: UUID,
    branch_id: UUID,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    load_owned_event(db, event_id, user)
    branch = BranchRepository.get(db=db, branch_id=branch_id)
    if branch is None or branch.event_id != str(event_id):
        raise NotFoundError(f"Branch {branch_id} not in event {event_id}", public_message="Branch not found")
    if branch.is_main:
        raise ValidationError(
            "Refusing to delete the main branch",
            public_message="The main branch cannot be deleted",
        )
    BranchRepository.delete(db=db, branch_id=branch_id)
    return Response(status_code=204)


@router.post("/events/{event_id}/evidence", response_model=EvidenceOut, status_code=201)
def add_evidence(
    event_id: UUID,
    payload: EvidenceCreateRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> EvidenceOut:
    load_owned_event(db, event_id, user)
    branch = BranchRepository.get(db=db, branch_id=payload.branch_id)
    if branch is None or branch.event_id != str(event_id):
        raise NotFoundError(
            f"Branch {payload.branch_id} not in event {event_id}",
            public_message="Branch not found",
        )
    if payload.parent_evidence_id is not None:
        parent = EvidenceRepository.get(db=db, evidence_id=payload.parent_evidence_id)
        if parent is None or parent.event_id != str(event_id):
            raise ValidationError(f"Parent evidence {payload.parent_evidence_id} not in event {event_id}")

    evidence = EvidenceRepository.create(
        db=db,
        event_id=event_id,
        branch_id=payload.branch_id,
        title=payload.title,
        content=payload.content,
        evidence_type=payload.evidence_type,
        source_url=payload.source_url,
        source_credibility=payload.source_credibility,
        image_url=payload.image_url,
        parent_evidence_id=payload.parent_evidence_id,
        supports_narrative=payload.supports_narrative,
        position_x=payload.position_x,
        position_y=payload.position_y,
    )
    return EvidenceOut.model_validate(evidence)


@router.post("/events/{event_id}/merge")
def merge_branches(
    event_id: UUID,
    payload: MergeRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> dict:
    load_owned_event(db, event_id, user)
    return BranchMerger(db).merge(
        event_id=event_id,
        source_branch_id=payload.source_branch_id,
        target_branch_id=payload.target_branch_id,
        delete_source=payload.delete_source,
    )


async def _stream_changes(
    request: Request, event_id: str, keepalive: float = KEEPALIVE_SECONDS
) -> AsyncIterator[str]:
    subscription = change_feed.subscribe(event_id, loop=asyncio.get_running_loop())
    try:
        yield "event: ready\ndata: {}\n\n"
        while not await request.is_disconnected():
            change = await subscription.next_change(keepalive)
            if change is None:
                yield ": keepalive\n\n"
                continue
            yield f"data: {json.dumps(change)}\n\n"
    finally:
        change_feed.unsubscribe(event_id, subscription)
        logger.debug("Change stream closed for event %s", event_id)


@router.get("/events/{event_id}/changes")
def stream_changes(
    event_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> StreamingResponse:
    load_owned_event(db, event_id, user)
    return StreamingResponse(
        _stream_changes(request, str(event_id)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
