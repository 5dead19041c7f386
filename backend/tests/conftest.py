"""
Ultra Roadmap Sync - Test Fixtures
==================================

Shared pytest fixtures for all tests.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any, Optional
from uuid import UUID

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from roadmap_sync.api.deps import get_roadmap_service
from roadmap_sync.api.main import app
from roadmap_sync.core.config import Settings, get_settings
from roadmap_sync.core.database import close_db, create_engine, create_session_factory, init_db
from roadmap_sync.core.identity import IdentityAdmin
from roadmap_sync.core.models import Profile, ProfileRole
from roadmap_sync.core.roadmap import (
    CredentialMailer,
    CycleManager,
    IdentityResolver,
    RoadmapService,
    RoadmapSynchronizer,
    WeekTitleGenerator,
)
from roadmap_sync.core.store import Store


# ==========================================================================
# Constants
# ==========================================================================

API_KEY = "test-shared-secret"
# Long enough to pass as an admin key
SERVICE_KEY = "service-role-" + "k" * 120
COMPLETION_URL = "https://completion.test/v1/chat/completions"
EMAIL_URL = "https://email.test/emails"


# ==========================================================================
# Database Fixtures
# ==========================================================================

@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite per test, so concurrent sessions see each other's
    committed writes.
    """
    test_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'roadmap_sync.db'}")
    await init_db(test_engine)
    yield test_engine
    await close_db(test_engine)


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> Store:
    return Store(session_factory)


@pytest.fixture
def identity(session_factory) -> IdentityAdmin:
    return IdentityAdmin(session_factory, SERVICE_KEY, password_rounds=4)


# ==========================================================================
# Outbound HTTP
# ==========================================================================

class FakeUpstream:
    """
    Records outbound requests and answers them from queued responses.

    Unqueued requests get a 200 with an empty JSON object.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, list[Any]] = {}

    def queue(self, url: str, *responses: Any) -> None:
        self.responses.setdefault(url, []).extend(responses)

    def sent_to(self, url: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if str(r.url) == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self.responses.get(str(request.url))
        if not queued:
            return httpx.Response(200, json={})
        response = queued.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest_asyncio.fixture
async def http_client(upstream: FakeUpstream) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
def completion_response() -> Callable[[list[str]], httpx.Response]:
    """Build a chat completion answer carrying ``titles``."""
    def build(titles: list[str], status_code: int = 200) -> httpx.Response:
        content = json.dumps({"titles": titles})
        return httpx.Response(
            status_code,
            json={"choices": [{"message": {"role": "assistant", "content": content}}]},
        )
    return build


# ==========================================================================
# Pipeline Fixtures
# ==========================================================================

@pytest.fixture
def titles(http_client) -> WeekTitleGenerator:
    """Unconfigured: always the local fallback titles."""
    return WeekTitleGenerator(api_key=None, api_url=COMPLETION_URL, model="test-model", client=http_client)


@pytest.fixture
def mailer(http_client) -> CredentialMailer:
    return CredentialMailer(
        api_key="re_test",
        api_url=EMAIL_URL,
        from_email="onboarding@example.com",
        app_url="https://app.example.com",
        test_recipient="inbox@example.com",
        client=http_client,
    )


@pytest.fixture
def resolver(store, identity) -> IdentityResolver:
    return IdentityResolver(store, identity, profile_settle_delay=0)


@pytest.fixture
def cycles(store) -> CycleManager:
    return CycleManager(store)


@pytest.fixture
def synchronizer(store, titles) -> RoadmapSynchronizer:
    return RoadmapSynchronizer(store, titles)


@pytest.fixture
def service(store, identity, resolver, cycles, synchronizer, mailer) -> RoadmapService:
    return RoadmapService(
        store=store,
        identity=identity,
        resolver=resolver,
        cycles=cycles,
        synchronizer=synchronizer,
        mailer=mailer,
    )


# ==========================================================================
# API Fixtures
# ==========================================================================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        ENVIRONMENT="test",
        X_API_KEY=API_KEY,
        SERVICE_ROLE_KEY=SERVICE_KEY,
    )


@pytest_asyncio.fixture
async def client(service: RoadmapService, test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide test HTTP client wired to the test pipeline.
    """
    app.dependency_overrides[get_roadmap_service] = lambda: service
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-API-KEY": API_KEY}


# ==========================================================================
# Data Fixtures
# ==========================================================================

@pytest.fixture
def create_profile(store) -> Callable[..., Any]:
    """Insert a profile directly in the store."""
    async def create(
        email: str,
        role: ProfileRole = ProfileRole.USER,
        full_name: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> Profile:
        return await store.insert(
            Profile,
            {"email": email, "role": role, "full_name": full_name, "user_id": user_id},
        )
    return create


@pytest_asyncio.fixture
async def coach(create_profile) -> Profile:
    return await create_profile("coach@example.com", role=ProfileRole.COACH, full_name="Claire Coach")


def _month(number: int) -> dict[str, str]:
    return {
        f"week_{week}": f"- Action {number}.{week} prospect leads\n- Review {number}.{week} pipeline"
        for week in range(1, 5)
    }


@pytest.fixture
def plan() -> dict[str, Any]:
    """Roadmap content with every section filled."""
    return {
        "header": {
            "email": "header@acme.test",
            "company_name": "Acme Conseil",
            "address": "12 rue de la Paix, Paris",
            "financials": {
                "ca": "1 234,56 €",
                "treasury": "10 000 €",
                "collaborators": "12 collaborateurs",
                "margin": "12%",
            },
        },
        "vision": {
            "structure": {
                "current_situation": "Processus non documentés",
                "actions": "Documenter les processus\nRecruter un assistant\n",
                "expert_suggestion": "Commencer par la facturation",
            },
            "acquisition": {
                "current_situation": "Peu de leads",
                "actions": "Relancer les anciens clients",
                "expert_suggestion": "",
            },
        },
        "strategic_goals": {
            "goals_4_months": "Doubler le pipeline",
            "goals_12_months": "Atteindre 500k de CA",
        },
        "monthly_plan": {f"month_{m}": _month(m) for m in range(1, 5)},
    }


@pytest.fixture
def make_payload(plan) -> Callable[..., dict[str, Any]]:
    """Current-shape payload; keyword arguments override ``data`` fields."""
    def build(**data: Any) -> dict[str, Any]:
        fields = {
            "client_name": "Jean Dupont",
            "client_email": "jean@acme.test",
            "client_phone": "+33600000000",
            "coach_email": "coach@example.com",
        }
        fields.update(data)
        return {"data": {k: v for k, v in fields.items() if v is not None}, "plan": plan}
    return build
