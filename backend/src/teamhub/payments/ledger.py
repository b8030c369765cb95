"""Idempotency ledger for webhook deliveries."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from sqlalchemy.exc import IntegrityError

from teamhub.logging_config import get_logger
from teamhub.payments.models import ProcessedWebhookEvent, WebhookEventState
from teamhub.storage.db import Database
from teamhub.storage.models import utcnow

logger = get_logger(__name__)


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    DUPLICATE = "duplicate"
    IN_PROGRESS = "in_progress"


class WebhookEventLedger:
    """Processed-event-id set with bounded retention.

    An event is claimed as pending before its handler runs and completed after.
    A handler failure releases the claim so the provider's redelivery is
    processed again. A claim left pending longer than `claim_timeout_seconds`
    (the worker died mid-delivery) is taken over by the next delivery.
    """

    def __init__(
        self,
        db: Database,
        source: str = "stripe",
        claim_timeout_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.source = source
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self.clock = clock

    def _query(self, session, event_id: str):
        return session.query(ProcessedWebhookEvent).filter(
            ProcessedWebhookEvent.event_id == event_id,
            ProcessedWebhookEvent.source == self.source,
        )

    def claim(self, event_id: str, event_type: str) -> ClaimOutcome:
        """Record the event as pending before processing.

        Returns:
            CLAIMED if the caller should run the handler, DUPLICATE if the event
            was already processed, IN_PROGRESS if another worker holds a live claim
        """
        now = self.clock()
        try:
            with self.db.session() as session:
                session.add(
                    ProcessedWebhookEvent(
                        event_id=event_id,
                        event_type=event_type,
                        source=self.source,
                        state=WebhookEventState.PENDING.value,
                        claimed_at=now,
                    )
                )
        except IntegrityError:
            return self._take_over_stale_claim(event_id, now)
        return ClaimOutcome.CLAIMED

    def _take_over_stale_claim(self, event_id: str, now: datetime) -> ClaimOutcome:
        with self.db.session() as session:
            # Conditional update, so only one redelivery wins the takeover
            taken = self._query(session, event_id).filter(
                ProcessedWebhookEvent.state == WebhookEventState.PENDING.value,
                ProcessedWebhookEvent.claimed_at < now - self.claim_timeout,
            ).update({ProcessedWebhookEvent.claimed_at: now}, synchronize_session=False)
            if taken:
                logger.warning("webhook_event_stale_claim_taken_over", event_id=event_id)
                return ClaimOutcome.CLAIMED

            existing = self._query(session, event_id).first()

        if existing is not None and existing.state == WebhookEventState.DONE.value:
            return ClaimOutcome.DUPLICATE
        return ClaimOutcome.IN_PROGRESS

    def complete(self, event_id: str) -> None:
        """Mark a claimed event as processed."""
        with self.db.session() as session:
            self._query(session, event_id).update(
                {
                    ProcessedWebhookEvent.state: WebhookEventState.DONE.value,
                    ProcessedWebhookEvent.processed_at: self.clock(),
                },
                synchronize_session=False,
            )

    def release(self, event_id: str) -> None:
        """Forget a claim whose handler failed."""
        with self.db.session() as session:
            self._query(session, event_id).delete()
        logger.info("webhook_event_released", event_id=event_id)

    def prune(self, retention_days: int = 30) -> int:
        """Remove webhook events claimed before the retention window.

        Returns:
            Number of deleted events
        """
        cutoff = self.clock() - timedelta(days=retention_days)
        with self.db.session() as session:
            deleted = session.query(ProcessedWebhookEvent).filter(
                ProcessedWebhookEvent.claimed_at < cutoff
            ).delete()
        logger.info("webhook_events_pruned", deleted=deleted, retention_days=retention_days)
        return deleted
