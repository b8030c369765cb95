"""
Shared pytest fixtures.

Every test gets its own SQLite database, an in-memory Stripe gateway and an
email sender that records instead of sending.
"""

import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from jose import jwt

from teamhub.email.service import EmailService
from teamhub.errors import ProviderError
from teamhub.payments.ingress import WebhookIngress
from teamhub.payments.ledger import WebhookEventLedger
from teamhub.payments.models import ProcessedWebhookEvent
from teamhub.payments.stripe_service import LiveSubscription, StripeGateway
from teamhub.settings import Settings
from teamhub.storage.db import Database
from teamhub.teams.models import SubscriptionPlan, SubscriptionStatus, Team
from teamhub.teams.reconciler import SubscriptionReconciler
from teamhub.teams.repository import TeamRepository
from teamhub.teams.service import TeamService

WEBHOOK_SECRET = "whsec_test_secret"
JWT_SECRET = "test-identity-secret-with-enough-length-0123456789"


# ============================================================================
# FAKES
# ============================================================================

class FrozenClock:
    """Controllable replacement for utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGateway(StripeGateway):
    """Real webhook verification, in-memory subscriptions."""

    def __init__(self):
        super().__init__("sk_test_123", WEBHOOK_SECRET, client=MagicMock())
        self.subscriptions: dict[str, LiveSubscription] = {}
        self.fail_lookups = False
        self.cancel_requests: list[tuple[str, bool]] = []

    def add_subscription(self, subscription_id: str, status: str = "active", trial_end=None):
        self.subscriptions[subscription_id] = LiveSubscription(
            id=subscription_id,
            status=status,
            trial_end=trial_end,
            current_period_end=None,
        )

    async def retrieve_subscription(self, subscription_id: str) -> LiveSubscription:
        if self.fail_lookups or subscription_id not in self.subscriptions:
            raise ProviderError(f"Could not retrieve subscription {subscription_id}")
        return self.subscriptions[subscription_id]

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> None:
        self.cancel_requests.append((subscription_id, cancel))


class RecordingEmailService(EmailService):
    """Records invitation emails instead of calling SendGrid."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.sent: list[dict] = []
        self.succeed = True

    async def send_team_invite_email(self, **kwargs) -> bool:
        self.sent.append(kwargs)
        return self.succeed


# ============================================================================
# HELPERS
# ============================================================================

def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Stripe-Signature header value: t=<ts>,v1=<hmac-sha256(ts.payload)>."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str | None = None) -> bytes:
    return json.dumps(
        {
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "type": event_type,
            "data": {"object": obj},
        }
    ).encode()


def make_token(user_id: str, secret: str = JWT_SECRET) -> str:
    return jwt.encode(
        {"sub": user_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        secret,
        algorithm="HS256",
    )


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def ledger_state(db, event_id: str) -> str | None:
    """Ledger state of a webhook event, None when no claim exists."""
    with db.session() as session:
        row = session.query(ProcessedWebhookEvent).filter(
            ProcessedWebhookEvent.event_id == event_id
        ).first()
        return row.state if row else None


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        env="test",
        database_url=f"sqlite:///{tmp_path / 'teamhub.db'}",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        identity_jwt_secret=JWT_SECRET,
        sendgrid_api_key=None,
    )


@pytest.fixture
def db(settings):
    database = Database(settings.database_url)
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def repository(db):
    return TeamRepository(db)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def email_service(settings):
    return RecordingEmailService(settings)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def team_service(repository, email_service, settings, clock):
    return TeamService(repository, email_service, settings, clock=clock)


@pytest.fixture
def reconciler(repository, gateway, settings):
    return SubscriptionReconciler(repository, gateway, settings)


@pytest.fixture
def ledger(db):
    return WebhookEventLedger(db)


@pytest.fixture
def ingress(gateway, ledger, reconciler):
    return WebhookIngress(gateway, ledger, reconciler)


@pytest.fixture
def owner(repository):
    return repository.create_user(
        email="owner@example.com",
        first_name="Olivia",
        last_name="Owner",
        user_id="user_owner",
    )


@pytest.fixture
def make_team(repository):
    """Factory creating a team through the repository (owner mirror included)."""

    def _make_team(
        owner,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        subscription_id: str = "sub_123",
    ) -> Team:
        start = datetime(2026, 1, 1)
        return repository.create_team(
            Team(
                name=f"{owner.display_name}'s team",
                owner_id=owner.id,
                owner_email=owner.email,
                owner_name=owner.display_name,
                subscription_status=status.value,
                subscription_plan=SubscriptionPlan.MONTHLY.value,
                subscription_start_date=start,
                subscription_end_date=start + timedelta(days=31),
                stripe_subscription_id=subscription_id,
                stripe_customer_id="cus_123",
                stripe_price_id="price_team_monthly",
                member_count=0,
            )
        )

    return _make_team


@pytest.fixture
def team(make_team, owner):
    return make_team(owner)


@pytest.fixture
def add_active_member(repository, team_service):
    """Factory: invite an email and accept it as a freshly created user."""

    async def _add(team, owner, email: str, user_id: str):
        user = repository.create_user(email=email, first_name=email.split("@")[0], user_id=user_id)
        result = await team_service.invite_member(team.id, email, owner.id)
        await team_service.accept_invite(result.member.invite_token, user.id)
        return repository.get_member(team.id, result.member.id)

    return _add
