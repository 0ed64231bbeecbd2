"""Organization, user and membership models."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from switchboard.persistence.database import Base


def generate_id() -> str:
    """Return a new opaque primary key."""
    return str(uuid.uuid4())


class Organization(Base):
    """Organization model representing a tenant."""

    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), unique=True, nullable=True, index=True)
    auto_assignment_enabled = Column(Boolean, default=False, nullable=False)
    auto_assignment_strategy = Column(String(32), default="round_robin", nullable=False)
    fb_app_secret = Column(String(255), nullable=True)
    fb_verify_token = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, domain={self.domain})>"


class User(Base):
    """User model for agents signing into the dashboard."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Member(Base):
    """Membership of a user in an organization."""

    __tablename__ = "members"
    __table_args__ = (UniqueConstraint("organization_id", "user_id", name="uq_members_org_user"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="agent")  # owner, admin, agent
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, organization_id={self.organization_id}, user_id={self.user_id}, role={self.role})>"
