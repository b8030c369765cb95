"""Tests for the webhook idempotency ledger."""

from datetime import datetime, timedelta

from conftest import FrozenClock, ledger_state
from teamhub.payments.ledger import ClaimOutcome, WebhookEventLedger
from teamhub.payments.models import ProcessedWebhookEvent, WebhookEventState
from teamhub.storage.models import utcnow


class TestWebhookEventLedger:

    def test_first_claim_wins_while_pending(self, ledger, db):
        assert ledger.claim("evt_1", "checkout.session.completed") is ClaimOutcome.CLAIMED
        assert ledger.claim("evt_1", "checkout.session.completed") is ClaimOutcome.IN_PROGRESS
        assert ledger_state(db, "evt_1") == WebhookEventState.PENDING.value

    def test_completed_event_is_a_duplicate(self, ledger, db):
        ledger.claim("evt_1", "checkout.session.completed")

        ledger.complete("evt_1")

        assert ledger_state(db, "evt_1") == WebhookEventState.DONE.value
        assert ledger.claim("evt_1", "checkout.session.completed") is ClaimOutcome.DUPLICATE

    def test_release_allows_reprocessing(self, ledger, db):
        ledger.claim("evt_1", "invoice.payment_failed")

        ledger.release("evt_1")

        assert ledger_state(db, "evt_1") is None
        assert ledger.claim("evt_1", "invoice.payment_failed") is ClaimOutcome.CLAIMED

    def test_stale_pending_claim_is_taken_over(self, db):
        clock = FrozenClock(datetime(2026, 3, 1, 12, 0, 0))
        ledger = WebhookEventLedger(db, claim_timeout_seconds=300, clock=clock)
        ledger.claim("evt_crash", "customer.subscription.deleted")

        clock.advance(seconds=299)
        assert ledger.claim("evt_crash", "customer.subscription.deleted") is ClaimOutcome.IN_PROGRESS

        clock.advance(seconds=2)
        assert ledger.claim("evt_crash", "customer.subscription.deleted") is ClaimOutcome.CLAIMED
        # The takeover refreshes the claim, so a concurrent redelivery loses
        assert ledger.claim("evt_crash", "customer.subscription.deleted") is ClaimOutcome.IN_PROGRESS

    def test_done_event_is_never_taken_over(self, db):
        clock = FrozenClock(datetime(2026, 3, 1, 12, 0, 0))
        ledger = WebhookEventLedger(db, claim_timeout_seconds=300, clock=clock)
        ledger.claim("evt_1", "invoice.paid")
        ledger.complete("evt_1")

        clock.advance(hours=2)

        assert ledger.claim("evt_1", "invoice.paid") is ClaimOutcome.DUPLICATE

    def test_prune_removes_only_old_events(self, ledger, db):
        ledger.claim("evt_new", "invoice.payment_failed")
        with db.session() as session:
            session.add(
                ProcessedWebhookEvent(
                    event_id="evt_old",
                    event_type="invoice.payment_failed",
                    source="stripe",
                    state=WebhookEventState.DONE.value,
                    claimed_at=utcnow() - timedelta(days=45),
                )
            )

        deleted = ledger.prune(retention_days=30)

        assert deleted == 1
        assert ledger_state(db, "evt_old") is None
        assert ledger_state(db, "evt_new") == WebhookEventState.PENDING.value
