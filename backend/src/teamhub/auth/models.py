"""User account model.

Users are owned by the identity provider; this service only reads their profile
and maintains the subscription mirror fields, which are derived from the Team
they belong to.
"""

from sqlalchemy import Boolean, Column, DateTime, String

from teamhub.storage.models import Base, generate_id, utcnow


class UserAccount(Base):
    """User record with the embedded team subscription mirror."""
    __tablename__ = "user_accounts"

    id = Column(String(64), primary_key=True, default=generate_id)

    # Identity
    email = Column(String(255), nullable=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    # Subscription mirror (kept consistent with Team by the reconciler)
    team_id = Column(String(64), nullable=True, index=True)
    is_team_owner = Column(Boolean, default=False, nullable=False)
    subscription_status = Column(String(20), default="none", nullable=False)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserAccount(id={self.id}, email={self.email}, team={self.team_id})>"

    @property
    def display_name(self) -> str:
        """First and last name, or an empty string."""
        return f"{self.first_name or ''} {self.last_name or ''}".strip()
