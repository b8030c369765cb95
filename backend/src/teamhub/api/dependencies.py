"""Service wiring shared by the routers.

Everything is constructed once in `create_app()` and stored on `app.state`.
"""

from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from teamhub.email.service import EmailService
from teamhub.errors import AuthenticationError, TeamHubError
from teamhub.payments.ingress import WebhookIngress
from teamhub.payments.ledger import WebhookEventLedger
from teamhub.payments.stripe_service import StripeGateway
from teamhub.settings import Settings
from teamhub.storage.db import Database
from teamhub.teams.dashboard import MembershipQueries
from teamhub.teams.reconciler import OneOffPurchaseHandler, SubscriptionReconciler, log_one_off_purchase
from teamhub.teams.repository import TeamRepository
from teamhub.teams.service import TeamService
from teamhub.teams.subscription import SubscriptionService


@dataclass
class Services:
    settings: Settings
    db: Database
    repository: TeamRepository
    gateway: StripeGateway
    email_service: EmailService
    ledger: WebhookEventLedger
    reconciler: SubscriptionReconciler
    ingress: WebhookIngress
    teams: TeamService
    queries: MembershipQueries
    subscriptions: SubscriptionService


def build_services(
    settings: Settings,
    db: Database,
    gateway: StripeGateway,
    email_service: EmailService | None = None,
    one_off_purchase_handler: OneOffPurchaseHandler = log_one_off_purchase,
) -> Services:
    """Construct every service with its collaborators injected."""
    repository = TeamRepository(db)
    email_service = email_service or EmailService(settings)
    ledger = WebhookEventLedger(db, claim_timeout_seconds=settings.webhook_claim_timeout_seconds)
    reconciler = SubscriptionReconciler(
        repository,
        gateway,
        settings,
        one_off_purchase_handler=one_off_purchase_handler,
    )
    return Services(
        settings=settings,
        db=db,
        repository=repository,
        gateway=gateway,
        email_service=email_service,
        ledger=ledger,
        reconciler=reconciler,
        ingress=WebhookIngress(gateway, ledger, reconciler),
        teams=TeamService(repository, email_service, settings),
        queries=MembershipQueries(repository),
        subscriptions=SubscriptionService(repository, gateway),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def error_envelope(error: TeamHubError) -> JSONResponse:
    """Failure envelope of the callable operations."""
    status_code = 401 if isinstance(error, AuthenticationError) else 200
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error.message, "code": error.code},
        headers=headers,
    )
