"""Stripe integration for TeamHub.

The gateway is constructed explicitly at startup from validated settings and
injected wherever the provider is needed; nothing here reads global state.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import stripe

from teamhub.errors import InvalidArgumentError, ProviderError
from teamhub.logging_config import get_logger
from teamhub.settings import Settings

logger = get_logger(__name__)


class WebhookVerificationError(InvalidArgumentError):
    """Missing or invalid signature, or a payload that is not an event."""


@dataclass(frozen=True)
class LiveSubscription:
    """The fields of a provider subscription this service acts on."""
    id: str
    status: str
    trial_end: datetime | None
    current_period_end: datetime | None
    cancel_at_period_end: bool = False


def from_unix(timestamp: int | None) -> datetime | None:
    """Provider epoch seconds -> naive UTC datetime."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).replace(tzinfo=None)


def subscription_period_end(subscription: dict[str, Any]) -> datetime | None:
    """Current period end of a subscription payload.

    Newer API versions carry it on the subscription items instead of the
    subscription itself.
    """
    period_end = subscription.get("current_period_end")
    if not period_end:
        items = (subscription.get("items") or {}).get("data") or []
        period_end = max((item.get("current_period_end") or 0 for item in items), default=0)
    return from_unix(period_end)


def invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """Subscription id of an invoice payload, across API versions."""
    subscription = invoice.get("subscription")
    if subscription is None:
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        subscription = details.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")
    return subscription or None


class StripeGateway:
    """Payment provider client: webhook verification and subscription lookups."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        tolerance_seconds: int = 300,
        client: stripe.StripeClient | None = None,
    ):
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds
        self._client = client or stripe.StripeClient(secret_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        """Build the gateway, failing fast on missing configuration.

        Raises:
            ConfigurationError: if any Stripe key is missing
        """
        settings.require_stripe()
        return cls(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
        )

    def verify_webhook_signature(self, payload: bytes, sig_header: str | None) -> dict[str, Any]:
        """Verify and parse a Stripe webhook event.

        Args:
            payload: Raw request body
            sig_header: Stripe-Signature header value

        Returns:
            The event as plain dicts

        Raises:
            WebhookVerificationError: If the signature or payload is invalid
        """
        if not sig_header:
            raise WebhookVerificationError("No Stripe signature found")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                sig_header,
                self.webhook_secret,
                self.tolerance_seconds,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError):
            raise WebhookVerificationError("Invalid webhook signature")

        try:
            event = json.loads(payload)
        except ValueError:
            raise WebhookVerificationError("Malformed webhook payload")

        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise WebhookVerificationError("Malformed webhook payload")
        if not isinstance((event.get("data") or {}).get("object"), dict):
            raise WebhookVerificationError("Malformed webhook payload")
        return event

    async def retrieve_subscription(self, subscription_id: str) -> LiveSubscription:
        """Fetch the live subscription.

        Raises:
            ProviderError: on any Stripe failure
        """
        try:
            subscription = await self._client.subscriptions.retrieve_async(subscription_id)
        except stripe.StripeError as e:
            logger.warning("stripe_subscription_lookup_failed", subscription_id=subscription_id, error=str(e))
            raise ProviderError(f"Could not retrieve subscription {subscription_id}") from e

        return LiveSubscription(
            id=subscription.id,
            status=subscription.status,
            trial_end=from_unix(getattr(subscription, "trial_end", None)),
            current_period_end=from_unix(getattr(subscription, "current_period_end", None)),
            cancel_at_period_end=bool(getattr(subscription, "cancel_at_period_end", False)),
        )

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> None:
        """Schedule (or unschedule) cancellation at the end of the current period.

        Raises:
            ProviderError: on any Stripe failure
        """
        try:
            await self._client.subscriptions.update_async(
                subscription_id,
                params={"cancel_at_period_end": cancel},
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe_subscription_update_failed",
                subscription_id=subscription_id,
                cancel_at_period_end=cancel,
                error=str(e),
            )
            raise ProviderError("Could not update the subscription with Stripe") from e

        logger.info(
            "stripe_subscription_cancel_at_period_end_set",
            subscription_id=subscription_id,
            cancel_at_period_end=cancel,
        )
