"""Team subscription entitlement for TeamHub.

- Teams created from Stripe checkouts
- Invitation tokens converting invites into memberships
- Subscription status cascaded to every member's access
"""

from teamhub.teams.models import MemberStatus, SubscriptionPlan, SubscriptionStatus, Team, TeamMember
from teamhub.teams.service import TeamService

__all__ = [
    "MemberStatus",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "Team",
    "TeamMember",
    "TeamService",
]
