"""Organization, user and membership repositories."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.organization import Member, Organization, User
from switchboard.persistence.repositories.base import BaseRepository


class OrganizationRepository(BaseRepository[Organization]):
    """Repository for Organization entities."""

    def __init__(self, session: AsyncSession):
        """Initialize organization repository."""
        super().__init__(Organization, session)

    async def get_by_domain(self, domain: str) -> Organization | None:
        """Get organization by its (case-insensitive) domain."""
        stmt = select(Organization).where(func.lower(Organization.domain) == domain.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class UserRepository(BaseRepository[User]):
    """Repository for User entities."""

    def __init__(self, session: AsyncSession):
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email."""
        stmt = select(User).where(func.lower(User.email) == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class MemberRepository(BaseRepository[Member]):
    """Repository for organization memberships."""

    def __init__(self, session: AsyncSession):
        """Initialize member repository."""
        super().__init__(Member, session)

    async def get_membership(self, organization_id: str, user_id: str) -> Member | None:
        """Get a user's membership in an organization.

        Args:
            organization_id: Organization ID
            user_id: User ID

        Returns:
            Member row or None when the user does not belong to the organization
        """
        stmt = select(Member).where(
            Member.organization_id == organization_id,
            Member.user_id == user_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_members(self, organization_id: str) -> list[Member]:
        """List all members of an organization, oldest first."""
        stmt = (
            select(Member)
            .where(Member.organization_id == organization_id)
            .order_by(Member.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_agents_with_role(self, organization_id: str, role: str) -> list[str]:
        """List user ids of members holding a role, in stable membership order.

        Args:
            organization_id: Organization ID
            role: Membership role (e.g. "agent")

        Returns:
            User IDs ordered by membership creation
        """
        stmt = (
            select(Member.user_id)
            .where(Member.organization_id == organization_id, Member.role == role)
            .order_by(Member.created_at.asc(), Member.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
