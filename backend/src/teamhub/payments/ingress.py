"""Webhook ingress: authenticate provider events and dispatch them."""

from typing import Any, Awaitable, Callable

import structlog

from teamhub.errors import EventInProgressError
from teamhub.logging_config import get_logger
from teamhub.payments.ledger import ClaimOutcome, WebhookEventLedger
from teamhub.payments.stripe_service import StripeGateway
from teamhub.teams.reconciler import SubscriptionReconciler

logger = get_logger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class WebhookIngress:
    """Signature gate, idempotency check and event-type dispatch.

    Signature failures raise WebhookVerificationError before anything is
    written. Handler exceptions propagate so the HTTP layer answers 500 and the
    provider redelivers. A delivery racing a live claim raises
    EventInProgressError and is retried by the provider too.
    """

    def __init__(
        self,
        gateway: StripeGateway,
        ledger: WebhookEventLedger,
        reconciler: SubscriptionReconciler,
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.handlers: dict[str, EventHandler] = {
            "checkout.session.completed": reconciler.handle_checkout_completed,
            "customer.subscription.created": reconciler.handle_subscription_created,
            "customer.subscription.updated": reconciler.handle_subscription_updated,
            "customer.subscription.deleted": reconciler.handle_subscription_deleted,
            "invoice.payment_succeeded": reconciler.handle_invoice_paid,
            "invoice.payment_failed": reconciler.handle_invoice_failed,
        }

    async def handle(self, payload: bytes, sig_header: str | None) -> dict[str, Any]:
        """Process one delivery.

        Args:
            payload: Raw request body, exactly as received
            sig_header: Stripe-Signature header value

        Returns:
            Acknowledgement body
        """
        event = self.gateway.verify_webhook_signature(payload, sig_header)
        event_id = event["id"]
        event_type = event["type"]

        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info("stripe_webhook_unhandled", event_id=event_id, event_type=event_type)
            return {"received": True}

        outcome = self.ledger.claim(event_id, event_type)
        if outcome is ClaimOutcome.DUPLICATE:
            logger.info("stripe_webhook_duplicate", event_id=event_id, event_type=event_type)
            return {"received": True, "duplicate": True}
        if outcome is ClaimOutcome.IN_PROGRESS:
            raise EventInProgressError(f"Event {event_id} is already being processed")

        with structlog.contextvars.bound_contextvars(event_id=event_id, event_type=event_type):
            logger.info("stripe_webhook_received")
            try:
                await handler(event["data"]["object"])
            except Exception:
                self.ledger.release(event_id)
                raise
            self.ledger.complete(event_id)
            logger.info("stripe_webhook_processed")

        return {"received": True}
