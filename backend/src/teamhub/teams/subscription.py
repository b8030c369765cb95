"""Owner-initiated subscription management.

Cancellation and reactivation are requested from Stripe; the resulting status
change reaches the team through the webhook like any other provider event.
"""

from typing import Any

from teamhub.errors import NotFoundError, PermissionDeniedError, PreconditionError, ProviderError
from teamhub.logging_config import get_logger
from teamhub.payments.stripe_service import StripeGateway
from teamhub.teams.dashboard import serialize_subscription
from teamhub.teams.models import SubscriptionStatus, Team
from teamhub.teams.repository import TeamRepository

logger = get_logger(__name__)


class SubscriptionService:
    """Lets a team owner inspect, cancel and reactivate the team subscription."""

    def __init__(self, repository: TeamRepository, gateway: StripeGateway):
        self.repository = repository
        self.gateway = gateway

    def _owned_team(self, caller_id: str) -> Team:
        user = self.repository.get_user(caller_id)
        if not user or not user.team_id:
            raise PreconditionError("You are not a member of a team")
        team = self.repository.get_team(user.team_id)
        if not team:
            raise NotFoundError("Team not found")
        if not team.is_owner(caller_id):
            raise PermissionDeniedError("Only the team owner can manage the subscription")
        return team

    async def get_subscription_status(self, caller_id: str) -> dict[str, Any]:
        """Stored subscription state, plus whether Stripe will cancel at period end."""
        team = self._owned_team(caller_id)
        result = serialize_subscription(team)

        # None when Stripe cannot be reached
        result["cancel_at_period_end"] = None
        try:
            live = await self.gateway.retrieve_subscription(team.stripe_subscription_id)
            result["cancel_at_period_end"] = live.cancel_at_period_end
        except ProviderError:
            logger.warning("subscription_status_lookup_failed", team_id=team.id)
        return result

    async def cancel_subscription(self, caller_id: str) -> dict[str, Any]:
        """Cancel at the end of the paid period."""
        team = self._owned_team(caller_id)
        if team.status == SubscriptionStatus.CANCELED:
            raise PreconditionError("Subscription is already canceled")

        await self.gateway.set_cancel_at_period_end(team.stripe_subscription_id, True)
        logger.info("team_subscription_cancel_requested", team_id=team.id, owner_id=caller_id)
        return {"cancel_at_period_end": True, "end_date": serialize_subscription(team)["end_date"]}

    async def reactivate_subscription(self, caller_id: str) -> dict[str, Any]:
        """Undo a pending cancel-at-period-end."""
        team = self._owned_team(caller_id)
        if team.status == SubscriptionStatus.CANCELED:
            raise PreconditionError(
                "Subscription has ended and cannot be reactivated. Please subscribe again."
            )

        await self.gateway.set_cancel_at_period_end(team.stripe_subscription_id, False)
        logger.info("team_subscription_reactivated", team_id=team.id, owner_id=caller_id)
        return {"cancel_at_period_end": False}
