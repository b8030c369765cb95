"""Subscription state reconciler.

Translates payment provider events into entitlement mutations: team creation on
checkout, status transitions, and the cascade of access changes to members.
Every handler is safe to re-run.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from teamhub.errors import ConfigurationError, NotFoundError, ProviderError
from teamhub.logging_config import get_logger
from teamhub.payments.stripe_service import (
    StripeGateway,
    invoice_subscription_id,
    subscription_period_end,
)
from teamhub.settings import Settings
from teamhub.storage.models import utcnow
from teamhub.teams.cascade import MemberAccessPatch, plan_member_access
from teamhub.teams.models import SubscriptionPlan, SubscriptionStatus, Team
from teamhub.teams.plans import (
    calculate_subscription_end_date,
    calculate_trial_end_date,
    price_id_to_plan,
)
from teamhub.teams.repository import TeamRepository
from teamhub.teams.status import map_provider_status

logger = get_logger(__name__)


class OneOffPurchaseHandler(Protocol):
    """Handles checkout sessions in payment mode (single purchases)."""

    async def __call__(self, session: dict[str, Any]) -> None:
        ...


async def log_one_off_purchase(session: dict[str, Any]) -> None:
    """Default payment-mode handler: one-off purchases are fulfilled elsewhere."""
    logger.info("one_off_purchase_not_handled", session_id=session.get("id"))


@dataclass
class CreateTeamInput:
    name: str
    owner_id: str
    owner_email: str
    owner_name: str
    subscription_plan: SubscriptionPlan
    subscription_start_date: datetime
    subscription_end_date: datetime
    stripe_subscription_id: str
    stripe_customer_id: str
    stripe_price_id: str
    trial_end_date: datetime | None = None


class SubscriptionReconciler:
    """Keeps Team, its members and their users' mirrors in step with Stripe."""

    def __init__(
        self,
        repository: TeamRepository,
        gateway: StripeGateway,
        settings: Settings,
        one_off_purchase_handler: OneOffPurchaseHandler = log_one_off_purchase,
    ):
        self.repository = repository
        self.gateway = gateway
        self.settings = settings
        self.one_off_purchase_handler = one_off_purchase_handler

    # ==================== TEAM LIFECYCLE ====================

    def create_team(self, data: CreateTeamInput) -> Team:
        """Create a team (status active) and make its purchaser the owner."""
        logger.info("team_creating", owner_id=data.owner_id, plan=data.subscription_plan.value)

        team = Team(
            name=data.name,
            owner_id=data.owner_id,
            owner_email=data.owner_email,
            owner_name=data.owner_name,
            subscription_status=SubscriptionStatus.ACTIVE.value,
            subscription_plan=data.subscription_plan.value,
            subscription_start_date=data.subscription_start_date,
            subscription_end_date=data.subscription_end_date,
            trial_end_date=data.trial_end_date,
            stripe_subscription_id=data.stripe_subscription_id,
            stripe_customer_id=data.stripe_customer_id,
            stripe_price_id=data.stripe_price_id,
            member_count=0,
        )
        team = self.repository.create_team(team)

        logger.info("team_created", team_id=team.id, owner_id=data.owner_id)
        return team

    def update_team_subscription(
        self,
        stripe_subscription_id: str,
        status: SubscriptionStatus,
        end_date: datetime | None = None,
    ) -> tuple[Team, list[MemberAccessPatch]]:
        """Cascade a status change to the team, its owner and its active members.

        Raises:
            NotFoundError: no team carries this subscription id
        """
        logger.info(
            "team_subscription_updating",
            stripe_subscription_id=stripe_subscription_id,
            status=status.value,
        )
        team, patches = self.repository.apply_subscription_change(
            stripe_subscription_id, status, end_date, plan_member_access
        )
        logger.info(
            "team_subscription_updated",
            team_id=team.id,
            status=status.value,
            members_patched=len(patches),
        )
        return team, patches

    def delete_team(self, team_id: str) -> None:
        """Delete a team, its members and the owner's mirror. Test-only."""
        self.repository.delete_team(team_id)
        logger.warning("team_deleted", team_id=team_id)

    # ==================== EVENT HANDLERS ====================

    async def handle_checkout_completed(self, session: dict[str, Any]) -> None:
        """checkout.session.completed: create a team, or delegate one-off purchases."""
        mode = session.get("mode")
        logger.info(
            "checkout_session_processing",
            session_id=session.get("id"),
            customer_id=session.get("customer"),
            subscription_id=session.get("subscription"),
            mode=mode,
        )

        if mode == "subscription":
            await self.create_team_from_checkout(session)
        elif mode == "payment":
            await self.one_off_purchase_handler(session)
        else:
            logger.warning("checkout_session_unknown_mode", mode=mode)

    async def create_team_from_checkout(self, session: dict[str, Any]) -> Team | None:
        """Create the purchaser's team from a subscription-mode checkout.

        Returns:
            The created team, or None when the team already exists

        Raises:
            ConfigurationError: user id or price id missing from session metadata
        """
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        price_id = metadata.get("price_id")

        if not user_id:
            raise ConfigurationError("User ID not found in session metadata")
        if not price_id:
            raise ConfigurationError("Price ID not found in session metadata")

        subscription_id = session.get("subscription")
        if isinstance(subscription_id, dict):
            subscription_id = subscription_id.get("id")
        if not subscription_id:
            raise ProviderError("Checkout session has no subscription")

        existing = self.repository.find_team_by_subscription(subscription_id)
        if existing:
            logger.info(
                "team_already_exists_for_subscription",
                team_id=existing.id,
                subscription_id=subscription_id,
            )
            return None

        user = self.repository.get_user(user_id)
        if not user:
            raise NotFoundError(f"User not found: {user_id}")

        checkout_email = session.get("customer_email") or (
            session.get("customer_details") or {}
        ).get("email")
        owner_name = user.display_name or user.email or checkout_email or "TeamHub"

        plan = price_id_to_plan(price_id, self.settings.stripe_price_plans)
        start_date = utcnow()
        end_date = calculate_subscription_end_date(start_date, plan)

        trial_end_date = calculate_trial_end_date(start_date, self.settings.trial_period_days)
        try:
            live = await self.gateway.retrieve_subscription(subscription_id)
            if live.trial_end:
                trial_end_date = live.trial_end
        except ProviderError:
            logger.warning("trial_end_lookup_failed_using_default", subscription_id=subscription_id)

        customer_id = session.get("customer")
        if isinstance(customer_id, dict):
            customer_id = customer_id.get("id")

        return self.create_team(
            CreateTeamInput(
                name=f"{owner_name}'s team",
                owner_id=user_id,
                owner_email=user.email or checkout_email or "",
                owner_name=owner_name,
                subscription_plan=plan,
                subscription_start_date=start_date,
                subscription_end_date=end_date,
                trial_end_date=trial_end_date,
                stripe_subscription_id=subscription_id,
                stripe_customer_id=customer_id or "",
                stripe_price_id=price_id,
            )
        )

    async def handle_subscription_created(self, subscription: dict[str, Any]) -> None:
        # Team is already created in checkout.session.completed
        logger.info(
            "subscription_created",
            subscription_id=subscription.get("id"),
            status=subscription.get("status"),
        )

    async def handle_subscription_updated(self, subscription: dict[str, Any]) -> None:
        """customer.subscription.updated: map the status and cascade it."""
        status = map_provider_status(subscription.get("status"))
        end_date = subscription_period_end(subscription)
        self._cascade_or_log(subscription["id"], status, end_date)

    async def handle_subscription_deleted(self, subscription: dict[str, Any]) -> None:
        """customer.subscription.deleted: the team is canceled."""
        self._cascade_or_log(subscription["id"], SubscriptionStatus.CANCELED)

    async def handle_invoice_paid(self, invoice: dict[str, Any]) -> None:
        """invoice.payment_succeeded: reactivate if the live subscription is active."""
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            return

        try:
            live = await self.gateway.retrieve_subscription(subscription_id)
        except ProviderError:
            logger.warning("invoice_paid_lookup_failed_skipping", subscription_id=subscription_id)
            return

        if live.status == "active":
            self._cascade_or_log(subscription_id, SubscriptionStatus.ACTIVE)
        else:
            logger.info(
                "invoice_paid_subscription_not_active",
                subscription_id=subscription_id,
                provider_status=live.status,
            )

    async def handle_invoice_failed(self, invoice: dict[str, Any]) -> None:
        """invoice.payment_failed: the team is past due."""
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            return
        self._cascade_or_log(subscription_id, SubscriptionStatus.PAST_DUE)

    def _cascade_or_log(
        self,
        subscription_id: str,
        status: SubscriptionStatus,
        end_date: datetime | None = None,
    ) -> None:
        # A subscription without a team can never succeed on redelivery
        try:
            self.update_team_subscription(subscription_id, status, end_date)
        except NotFoundError as e:
            logger.warning(
                "team_not_found_for_subscription",
                subscription_id=subscription_id,
                status=status.value,
                error=str(e),
            )
