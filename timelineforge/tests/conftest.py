"""
Shared fixtures: an in-memory SQLite database, fake search and LLM
callables, and an API client with auth and upstream dependencies swapped
for the fakes. Nothing here touches the network.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["TAVILY_API_KEY"] = "test-tavily-key"
os.environ["SUPABASE_URL"] = "https://auth.example.test"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["SCHEDULER_TOKEN"] = ""

import uuid
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timelineforge.auth import AuthenticatedUser
from timelineforge.environments.web.state import SearchResponse, SearchResult
from timelineforge.storage import change_feed
from timelineforge.storage.base import Base
from timelineforge.storage.repositories.branch_repo import BranchRepository
from timelineforge.storage.repositories.event_repo import EventRepository

OWNER_ID = str(uuid.uuid4())
OTHER_USER_ID = str(uuid.uuid4())


class FakeLLM:
    """
    Text LLM stand-in. `replies` maps a prompt substring to a reply; a reply
    that is an exception instance is raised instead. Unmatched prompts get
    `default`.
    """

    def __init__(self, default: str = ""):
        self.replies: Dict[str, object] = {}
        self.default = default
        self.prompts: List[str] = []

    def __call__(self, prompt: str, temperature: float = 0.3, max_output_tokens: int = 4096) -> str:
        self.prompts.append(prompt)
        for marker, reply in self.replies.items():
            if marker in prompt:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        return self.default

    def count(self, marker: str) -> int:
        return sum(1 for p in self.prompts if marker in p)


class FakeVisionLLM:
    def __init__(self, reply: str = ""):
        self.reply = reply
        self.calls: List[dict] = []

    def __call__(self, prompt, image_bytes, mime_type="image/jpeg", extra_prompt=None, **kwargs) -> str:
        self.calls.append({
            "prompt": prompt,
            "image_bytes": image_bytes,
            "mime_type": mime_type,
            "extra_prompt": extra_prompt,
        })
        return self.reply


class FakeSearch:
    configured = True

    def __init__(self):
        self.results: List[SearchResult] = []
        self.answer: Optional[str] = None
        self.error: Optional[Exception] = None
        self.queries: List[str] = []

    def search(self, query: str, max_results: int = 5, include_raw_content: bool = False) -> SearchResponse:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return SearchResponse(query=query, answer=self.answer, results=list(self.results[:max_results]))


class FakeFetcher:
    def __init__(self, body: bytes = b"\x89PNG fake", mime_type: str = "image/png"):
        self.body = body
        self.mime_type = mime_type
        self.urls: List[str] = []

    def fetch(self, url: str):
        self.urls.append(url)
        return self.body, self.mime_type


def make_results(*urls: str) -> List[SearchResult]:
    return [
        SearchResult(url=url, title=f"Article {i}", content=f"Body of article {i} at {url}")
        for i, url in enumerate(urls)
    ]


@pytest.fixture(scope="session", autouse=True)
def _install_change_feed():
    change_feed.install()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def fake_llm():
    return FakeLLM()


@pytest.fixture()
def fake_vision_llm():
    return FakeVisionLLM()


@pytest.fixture()
def fake_search():
    return FakeSearch()


@pytest.fixture()
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture()
def make_event(db):
    """Creates an owned event with its main branch, as the create endpoint does."""

    def _make(title: str = "Test Event", description: Optional[str] = None, user_id: str = OWNER_ID):
        event = EventRepository.create(db=db, user_id=user_id, title=title, description=description)
        BranchRepository.create_main(db=db, event_id=event.id)
        return event

    return _make


@pytest.fixture()
def client(session_factory, fake_llm, fake_vision_llm, fake_search, fake_fetcher):
    from fastapi.testclient import TestClient

    from timelineforge.api import deps
    from timelineforge.main import app
    from timelineforge.storage.db import get_db

    current_user = {"id": OWNER_ID}

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_current_user] = lambda: AuthenticatedUser(id=current_user["id"])
    app.dependency_overrides[deps.get_web_search] = lambda: fake_search
    app.dependency_overrides[deps.get_llm] = lambda: fake_llm
    app.dependency_overrides[deps.get_vision_llm] = lambda: fake_vision_llm
    app.dependency_overrides[deps.get_image_fetcher] = lambda: fake_fetcher

    test_client = TestClient(app, raise_server_exceptions=False)
    test_client.current_user = current_user
    yield test_client
    app.dependency_overrides.clear()
