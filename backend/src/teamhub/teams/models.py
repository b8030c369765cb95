"""Team entitlement database models."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from teamhub.storage.models import Base, generate_id, utcnow


class SubscriptionStatus(str, Enum):
    """Internal subscription status; Team is the source of truth."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    NONE = "none"

    @property
    def grants_access(self) -> bool:
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class SubscriptionPlan(str, Enum):
    """Subscription terms sold by the payment provider."""
    MONTHLY = "monthly"
    SIX_MONTH = "6-month"
    TWELVE_MONTH = "12-month"


class MemberStatus(str, Enum):
    """TeamMember lifecycle.

    invited --accept--> active, invited --decline--> (deleted),
    active --remove/leave--> removed.
    """
    INVITED = "invited"
    ACTIVE = "active"
    REMOVED = "removed"


# Statuses counted by Team.member_count
OPEN_MEMBER_STATUSES = (MemberStatus.INVITED.value, MemberStatus.ACTIVE.value)


class Team(Base):
    """The billable entitlement unit: one owner, many members, one subscription."""
    __tablename__ = "teams"

    id = Column(String(64), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)

    # Owner details
    owner_id = Column(String(64), nullable=False, index=True)
    owner_email = Column(String(255), nullable=False, default="")
    owner_name = Column(String(255), nullable=False, default="")

    # Subscription details (denormalized from Stripe)
    subscription_status = Column(String(20), nullable=False, default=SubscriptionStatus.NONE.value)
    subscription_plan = Column(String(20), nullable=False, default=SubscriptionPlan.MONTHLY.value)
    subscription_start_date = Column(DateTime, nullable=False)
    subscription_end_date = Column(DateTime, nullable=False)
    trial_end_date = Column(DateTime, nullable=True)

    # Stripe references
    stripe_subscription_id = Column(String(255), nullable=False, unique=True, index=True)
    stripe_customer_id = Column(String(255), nullable=False, default="")
    stripe_price_id = Column(String(255), nullable=False, default="")

    # Invited + active members, owner excluded
    member_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Team(id={self.id}, name={self.name}, status={self.subscription_status})>"

    @property
    def status(self) -> SubscriptionStatus:
        return SubscriptionStatus(self.subscription_status)

    def is_owner(self, user_id: str | None) -> bool:
        return user_id is not None and self.owner_id == user_id


class TeamMember(Base):
    """Membership record tracking a person's relationship to a team.

    invite_token and invite_expires_at are set only while status is invited.
    """
    __tablename__ = "team_members"
    __table_args__ = (
        # One invited or active membership per email and team
        Index(
            "uq_team_members_open_email",
            "team_id",
            "email",
            unique=True,
            sqlite_where=text("status IN ('invited', 'active')"),
            postgresql_where=text("status IN ('invited', 'active')"),
        ),
    )

    id = Column(String(64), primary_key=True, default=generate_id)
    team_id = Column(String(64), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)  # Always lowercased
    name = Column(String(255), nullable=True)
    user_id = Column(String(64), nullable=True, index=True)  # Bound on accept

    # Invitation workflow
    status = Column(String(20), nullable=False, default=MemberStatus.INVITED.value)
    invite_token = Column(String(128), nullable=True, unique=True, index=True)
    invite_expires_at = Column(DateTime, nullable=True)

    # Timestamps
    invited_at = Column(DateTime, default=utcnow, nullable=False)
    invited_by = Column(String(64), nullable=False)
    joined_at = Column(DateTime, nullable=True)
    removed_at = Column(DateTime, nullable=True)

    # Access control
    has_subscription_access = Column(Boolean, default=False, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="members")

    def __repr__(self):
        return f"<TeamMember(team={self.team_id}, email={self.email}, status={self.status})>"

    def is_expired(self, now) -> bool:
        """An invite expires at invite_expires_at exactly, not one tick later."""
        return self.invite_expires_at is not None and now >= self.invite_expires_at
