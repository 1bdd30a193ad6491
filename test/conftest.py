"""
Pytest configuration and fixtures for the assistant platform tests.

Every test gets a fresh in-memory SQLite database (aiosqlite) wired into the
app through the get_session_factory dependency, and a scripted LLM provider
in place of OpenAI.
"""

import os

# Settings are read once at import time; pin what the tests rely on first
os.environ["OPENAI_API_KEY"] = ""
os.environ["MLFLOW_TRACKING_URI"] = ""
os.environ["DATABASE_URL"] = ""
os.environ["MOCK_TOKEN_DELAY_MS"] = "0"

from collections.abc import AsyncGenerator  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from assistant_platform.core.config import settings  # noqa: E402
from assistant_platform.core.errors import UpstreamError  # noqa: E402
from assistant_platform.core.security import create_access_token, hash_password  # noqa: E402
from assistant_platform.db.session import get_session_factory  # noqa: E402
from assistant_platform.models import Base, Chatbot, Tenant, User, UserRole  # noqa: E402
from assistant_platform.services.llm_service import (  # noqa: E402
    CompletionStream,
    CompletionUsage,
    StreamEvent,
    get_llm_service,
)
from main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ACME_ID = "11111111-1111-4111-8111-111111111111"
GLOBEX_ID = "22222222-2222-4222-8222-222222222222"
ALICE_ID = "33333333-3333-4333-8333-333333333333"
BOB_ID = "44444444-4444-4444-8444-444444444444"
ADMIN_ID = "55555555-5555-4555-8555-555555555555"
ACME_BOT_ID = "66666666-6666-4666-8666-666666666666"
ACME_DRAFT_BOT_ID = "77777777-7777-4777-8777-777777777777"
GLOBEX_BOT_ID = "88888888-8888-4888-8888-888888888888"
ADMIN_PASSWORD = "adminpassword"


class ScriptedLLM:
    """Stands in for LLMService: records every call and replays fixed tokens."""

    def __init__(self) -> None:
        self.calls: list[tuple[list[dict], object]] = []
        self.tokens = ["Hello", " from", " the", " assistant."]
        self.usage = CompletionUsage(prompt_tokens=12, completion_tokens=4)
        self.fail_on_open: Optional[Exception] = None
        # Raise UpstreamError after this many tokens have been streamed
        self.fail_after: Optional[int] = None

    @property
    def last_messages(self) -> list[dict]:
        return self.calls[-1][0]

    @property
    def last_config(self):
        return self.calls[-1][1]

    async def open_stream(self, messages, config) -> CompletionStream:
        self.calls.append((messages, config))
        if self.fail_on_open is not None:
            raise UpstreamError(details={"originalError": str(self.fail_on_open)})

        tokens = list(self.tokens)
        usage = self.usage
        fail_after = self.fail_after

        async def events():
            for index, token in enumerate(tokens):
                if fail_after is not None and index == fail_after:
                    raise UpstreamError(details={"originalError": "connection reset"})
                yield StreamEvent(token=token)
            yield StreamEvent(usage=usage, finish_reason="stop")

        return CompletionStream(events(), model=config.model)


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema per test on a single shared in-memory connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seed(session_factory) -> dict:
    """
    Demo tenant + demo user, two companies, users and chatbots:

      acme-corp: alice (user), bob (user), admin (admin, with password),
                 published bot (with settings), unpublished draft bot
      globex:    one published bot
    """
    async with session_factory() as session:
        session.add_all([
            Tenant(id=settings.DEMO_TENANT_ID, name="Demo Company", slug="demo"),
            Tenant(
                id=ACME_ID,
                name="Acme Corp",
                slug="acme-corp",
                llm_model="gpt-4o",
                temperature=0.3,
                system_prompt="You are Acme's assistant.",
            ),
            Tenant(id=GLOBEX_ID, name="Globex", slug="globex"),
        ])
        await session.flush()
        session.add_all([
            User(
                id=settings.DEMO_USER_ID,
                tenant_id=settings.DEMO_TENANT_ID,
                email="demo@demo.com",
                name="Demo User",
                role=UserRole.user.value,
            ),
            User(id=ALICE_ID, tenant_id=ACME_ID, email="alice@acme.com", name="Alice"),
            User(id=BOB_ID, tenant_id=ACME_ID, email="bob@acme.com", name="Bob"),
            User(
                id=ADMIN_ID,
                tenant_id=ACME_ID,
                email="admin@acme.com",
                name="Admin",
                role=UserRole.admin.value,
                hashed_password=hash_password(ADMIN_PASSWORD),
            ),
            Chatbot(
                id=ACME_BOT_ID,
                tenant_id=ACME_ID,
                name="Acme Helper",
                system_prompt="You are the Acme helper bot.",
                model="gpt-4o-mini",
                max_tokens=512,
                settings={
                    "model_params": {"top_p": 0.9},
                    "provider_options": {"reasoning_effort": "high", "store": True},
                    "theme": "dark",
                },
                is_published=True,
            ),
            Chatbot(
                id=ACME_DRAFT_BOT_ID,
                tenant_id=ACME_ID,
                name="Acme Draft",
                is_published=False,
            ),
            Chatbot(
                id=GLOBEX_BOT_ID,
                tenant_id=GLOBEX_ID,
                name="Globex Bot",
                is_published=True,
            ),
        ])
        await session.commit()

    return {
        "acme_id": ACME_ID,
        "globex_id": GLOBEX_ID,
        "alice_id": ALICE_ID,
        "bob_id": BOB_ID,
        "admin_id": ADMIN_ID,
        "acme_bot_id": ACME_BOT_ID,
        "acme_draft_bot_id": ACME_DRAFT_BOT_ID,
        "globex_bot_id": GLOBEX_BOT_ID,
    }


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
async def client(session_factory, llm) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_llm_service] = lambda: llm
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(seed) -> dict[str, str]:
    token = create_access_token(subject=ADMIN_ID, tenant_id=ACME_ID, role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(seed) -> dict[str, str]:
    token = create_access_token(subject=ALICE_ID, tenant_id=ACME_ID, role="user")
    return {"Authorization": f"Bearer {token}"}
