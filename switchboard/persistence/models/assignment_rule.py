"""Auto-assignment rule model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String

from switchboard.persistence.database import Base
from switchboard.persistence.models.organization import generate_id


class AssignmentRule(Base):
    """A prioritized rule selecting the candidate agent pool for new contacts."""

    __tablename__ = "assignment_rules"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    condition_type = Column(String(20), nullable=False, default="always")  # always, channel, tag, keyword, time
    condition_value = Column(JSON, nullable=False, default=dict)
    assign_to = Column(String(20), nullable=False, default="all_agents")  # all_agents, specific
    assignee_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AssignmentRule(id={self.id}, priority={self.priority}, condition_type={self.condition_type})>"
