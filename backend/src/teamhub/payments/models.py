"""Payment provider persistence models."""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String

from teamhub.storage.models import Base, utcnow


class WebhookEventState(str, Enum):
    PENDING = "pending"
    DONE = "done"


class ProcessedWebhookEvent(Base):
    """Tracks webhook events for idempotency.

    A row is claimed as pending before any mutation and marked done once the
    handler succeeds. The unique event id makes a second delivery of a done event
    a no-op. A pending row whose claim is older than the timeout belongs to a
    worker that died and may be claimed again. Stored in the database to survive
    server restarts and work across multiple processes.
    """
    __tablename__ = "processed_webhook_events"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)  # e.g., "checkout.session.completed"
    source = Column(String(50), nullable=False)  # e.g., "stripe"
    state = Column(String(20), nullable=False, default=WebhookEventState.PENDING.value)
    claimed_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ProcessedWebhookEvent(id={self.event_id}, type={self.event_type}, state={self.state})>"
