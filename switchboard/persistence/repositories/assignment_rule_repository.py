"""Assignment rule repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.assignment_rule import AssignmentRule
from switchboard.persistence.repositories.base import BaseRepository


class AssignmentRuleRepository(BaseRepository[AssignmentRule]):
    """Repository for AssignmentRule entities."""

    def __init__(self, session: AsyncSession):
        """Initialize assignment rule repository."""
        super().__init__(AssignmentRule, session)

    async def list_matching_rules(self, organization_id: str) -> list[AssignmentRule]:
        """List active rules, highest priority first."""
        stmt = (
            select(AssignmentRule)
            .where(
                AssignmentRule.organization_id == organization_id,
                AssignmentRule.active.is_(True),
            )
            .order_by(AssignmentRule.priority.desc(), AssignmentRule.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
