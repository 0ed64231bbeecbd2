"""FastAPI dependencies for auth, tenant resolution and shared components."""

import logging
from dataclasses import dataclass
from typing import Annotated
from urllib.parse import urlparse

from fastapi import Depends, Header, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from switchboard.core.auth import decode_access_token
from switchboard.core.tenant_context import set_organization_context
from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.widget_service import WidgetService
from switchboard.infrastructure.background_tasks import BackgroundTaskRunner
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.infrastructure.event_bus import EventBus
from switchboard.infrastructure.facebook_client import FacebookGraphClient
from switchboard.persistence.database import get_db, get_session_factory
from switchboard.persistence.models.channel import Channel
from switchboard.persistence.models.contact import Contact
from switchboard.persistence.models.organization import Member, Organization, User
from switchboard.persistence.repositories.organization_repository import (
    MemberRepository,
    OrganizationRepository,
    UserRepository,
)
from switchboard.settings import settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0"}


def get_event_bus(request: Request) -> EventBus:
    """The process-wide event bus built at startup."""
    return request.app.state.event_bus


def get_task_runner(request: Request) -> BackgroundTaskRunner:
    """The process-wide background task runner."""
    return request.app.state.task_runner


def get_evolution_client(request: Request) -> EvolutionClient:
    """WhatsApp gateway client."""
    return request.app.state.evolution_client


def get_graph_client(request: Request) -> FacebookGraphClient:
    """Facebook Graph API client."""
    return request.app.state.graph_client


def get_ingestion_pipeline(
    db: Annotated[AsyncSession, Depends(get_db)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
    task_runner: Annotated[BackgroundTaskRunner, Depends(get_task_runner)],
    session_factory: Annotated[async_sessionmaker, Depends(get_session_factory)],
    graph_client: Annotated[FacebookGraphClient, Depends(get_graph_client)],
) -> MessageIngestionPipeline:
    """Ingestion pipeline bound to the request session."""
    return MessageIngestionPipeline(
        db,
        event_bus,
        task_runner=task_runner,
        session_factory=session_factory,
        graph_client=graph_client,
    )


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get current authenticated user from a bearer token or the session cookie.

    EventSource cannot send headers, so the agent stream relies on the cookie.

    Raises:
        HTTPException: If authentication fails
    """
    token = credentials.credentials if credentials else request.cookies.get(settings.session_cookie_name)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await UserRepository(db).get_by_id(None, str(payload["sub"]))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def _request_hosts(request: Request) -> list[str]:
    hosts: list[str] = []
    origin = request.headers.get("origin")
    if origin:
        hostname = urlparse(origin).hostname
        if hostname:
            hosts.append(hostname)
    forwarded = request.headers.get("x-forwarded-host")
    if forwarded:
        hosts.append(forwarded.split(",")[0].strip().split(":")[0])
    host = request.headers.get("host")
    if host:
        hosts.append(host.split(":")[0])
    return [h.lower() for h in hosts if h]


async def resolve_organization(request: Request, db: AsyncSession) -> Organization | None:
    """Work out which organization a dashboard request targets.

    Order: ``orgId`` query parameter, ``X-Organization-Id`` header, the
    request domain (Origin, then X-Forwarded-Host, then Host), and finally
    the configured development organization for localhost.
    """
    org_repo = OrganizationRepository(db)

    explicit_id = request.query_params.get("orgId") or request.headers.get("x-organization-id")
    if explicit_id:
        return await org_repo.get_by_id(None, explicit_id)

    hosts = _request_hosts(request)
    for host in hosts:
        organization = await org_repo.get_by_domain(host)
        if organization is not None:
            return organization

    if settings.dev_organization_id and any(host in LOCAL_HOSTS for host in hosts):
        return await org_repo.get_by_id(None, settings.dev_organization_id)
    return None


@dataclass
class MemberContext:
    """The authenticated caller acting inside one organization."""

    user: User
    member: Member
    organization: Organization

    @property
    def organization_id(self) -> str:
        return self.organization.id


async def require_membership(
    request: Request,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MemberContext:
    """Single authorization check for every agent-facing route.

    Raises:
        HTTPException: 404 if no organization resolves, 403 if the caller is not a member
    """
    organization = await resolve_organization(request, db)
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found",
        )

    member = await MemberRepository(db).get_membership(organization.id, user.id)
    if member is None:
        logger.warning(
            f"User {user.id} denied access to organization {organization.id}",
            extra={"user_id": user.id},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this organization",
        )

    set_organization_context(organization.id)
    return MemberContext(user=user, member=member, organization=organization)


async def get_widget_channel(
    db: Annotated[AsyncSession, Depends(get_db)],
    x_widget_key: Annotated[str | None, Header()] = None,
    key: Annotated[str | None, Query()] = None,
) -> Channel:
    """Resolve the widget channel from the API key header (or ``key`` query).

    Raises:
        HTTPException: 401 if the key is missing or unknown
    """
    channel = await WidgetService(db).get_channel(x_widget_key or key)
    if channel is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid widget key",
        )
    set_organization_context(channel.organization_id)
    return channel


async def get_widget_contact(
    channel: Annotated[Channel, Depends(get_widget_channel)],
    db: Annotated[AsyncSession, Depends(get_db)],
    x_contact_id: Annotated[str | None, Header()] = None,
) -> Contact:
    """Resolve the visitor contact and check it belongs to the key's channel.

    Raises:
        HTTPException: 403 if the contact is unknown or owned by another channel
    """
    contact = await WidgetService(db).get_owned_contact(channel, x_contact_id)
    if contact is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid session",
        )
    return contact
