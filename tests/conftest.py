"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from switchboard.core.auth import create_access_token
from switchboard.core.password import hash_password
from switchboard.infrastructure.background_tasks import BackgroundTaskRunner
from switchboard.infrastructure.event_bus import EventBus, TopicKind
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.infrastructure.facebook_client import FacebookGraphClient
from switchboard.persistence.database import Base, get_db, get_session_factory
from switchboard.persistence.models import *  # noqa: F401, F403
from switchboard.persistence.models.channel import ChannelKind, ChannelStatus
from switchboard.persistence.repositories.channel_repository import ChannelRepository
from switchboard.persistence.repositories.organization_repository import (
    MemberRepository,
    OrganizationRepository,
    UserRepository,
)

AGENT_PASSWORD = "correct-horse-battery"
WIDGET_KEY = "wk_test_acme"
WA_INSTANCE = "acme-whatsapp"


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so request and background sessions get their own connections."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'switchboard.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def event_bus():
    """Fresh event bus per test."""
    return EventBus()


@pytest.fixture
async def task_runner():
    """Background runner; tests await its work with drain()."""
    runner = BackgroundTaskRunner()
    yield runner
    await runner.shutdown()


@pytest.fixture
def evolution_client():
    """Mocked WhatsApp gateway client."""
    client = AsyncMock(spec=EvolutionClient)
    client.find_labels.return_value = []
    client.handle_label.return_value = True
    client.send_text.return_value = {"key": {"id": "3EB0SENT"}}
    return client


@pytest.fixture
def graph_client():
    """Mocked Facebook Graph client."""
    client = AsyncMock(spec=FacebookGraphClient)
    client.fetch_lead.return_value = None
    return client


@pytest.fixture
def collected(event_bus):
    """Record everything published on an organization topic.

    Usage: ``events = collected(organization.id)``
    """

    def _collect(organization_id: str, kind: TopicKind = TopicKind.ORGANIZATION) -> list[dict]:
        events: list[dict] = []
        event_bus.subscribe(kind, organization_id, events.append)
        return events

    return _collect


@pytest.fixture
async def organization(db_session):
    """Organization with a known domain and lead webhook secret."""
    return await OrganizationRepository(db_session).create(
        None,
        name="Acme",
        domain="acme.test",
        fb_app_secret="fb-app-secret",
    )


@pytest.fixture
async def other_organization(db_session):
    """A second tenant."""
    return await OrganizationRepository(db_session).create(None, name="Globex", domain="globex.test")


@pytest.fixture
async def agent(db_session, organization):
    """Agent member of ``organization``."""
    user = await UserRepository(db_session).create(
        None,
        email="alice@acme.test",
        name="Alice Agent",
        hashed_password=hash_password(AGENT_PASSWORD),
    )
    await MemberRepository(db_session).create(organization.id, user_id=user.id, role="agent")
    return user


@pytest.fixture
def auth_headers(agent, organization):
    """Bearer token plus explicit organization header for ``agent``."""
    token = create_access_token(data={"sub": agent.id})
    return {"Authorization": f"Bearer {token}", "X-Organization-Id": organization.id}


@pytest.fixture
async def widget_channel(db_session, organization):
    """Website widget channel of ``organization``."""
    return await ChannelRepository(db_session).create(
        organization.id,
        name="Website",
        kind=ChannelKind.WIDGET,
        status=ChannelStatus.CONNECTED,
        api_key=WIDGET_KEY,
        config={"primaryColor": "#ff5500", "agentName": "Acme Support"},
    )


@pytest.fixture
async def whatsapp_channel(db_session, organization):
    """Connected WhatsApp channel of ``organization``."""
    return await ChannelRepository(db_session).create(
        organization.id,
        name="WhatsApp",
        kind=ChannelKind.WHATSAPP,
        status=ChannelStatus.CONNECTED,
        external_instance_id=WA_INSTANCE,
        config={"evolutionUrl": "http://evolution.test", "evolutionApiKey": "evo-key"},
    )


@pytest.fixture
def app(session_factory, event_bus, task_runner, evolution_client, graph_client):
    """Application wired to the test database, bus, runner and mocked clients."""
    from switchboard.main import create_app

    application = create_app()
    application.state.event_bus = event_bus
    application.state.task_runner = task_runner
    application.state.evolution_client = evolution_client
    application.state.graph_client = graph_client

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_session_factory] = lambda: session_factory

    yield application

    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Create a test HTTP client."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
