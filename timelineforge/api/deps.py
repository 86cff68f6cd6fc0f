from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from timelineforge.auth import AuthenticatedUser, TokenVerifier, parse_bearer
from timelineforge.config import settings
from timelineforge.environments.web.fetch import ImageFetcher
from timelineforge.environments.web.search import WebSearch
from timelineforge.errors import AuthorizationError, NotFoundError
from timelineforge.storage.models.event import Event
from timelineforge.storage.repositories.event_repo import EventRepository
from timelineforge.utils.llm_client import llm_complete, llm_complete_with_image


def get_token_verifier() -> TokenVerifier:
    return TokenVerifier(timeout=settings.upstream_timeout_seconds)


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> AuthenticatedUser:
    return verifier.verify(parse_bearer(authorization))


def get_web_search() -> WebSearch:
    return WebSearch()


def get_llm() -> Callable[..., str]:
    return llm_complete


def get_vision_llm() -> Callable[..., str]:
    return llm_complete_with_image


def get_image_fetcher() -> ImageFetcher:
    return ImageFetcher()


def load_owned_event(db: Session, event_id, user: AuthenticatedUser) -> Event:
    event = EventRepository.get(db, event_id)
    if event is None:
        raise NotFoundError(
            f"Event {event_id} does not exist",
            public_message="Event not found or access denied",
        )
    if str(event.user_id) != str(user.id):
        raise AuthorizationError(f"User {user.id} does not own event {event_id}")
    return event
