"""Provider subscription status -> internal status."""

from teamhub.errors import UnknownProviderStatusError
from teamhub.teams.models import SubscriptionStatus

PROVIDER_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.NONE,
    "paused": SubscriptionStatus.NONE,
}


def map_provider_status(provider_status: str | None) -> SubscriptionStatus:
    """Translate a Stripe subscription status.

    Raises:
        UnknownProviderStatusError: for any status missing from the table
    """
    try:
        return PROVIDER_STATUS_MAP[provider_status]
    except KeyError:
        raise UnknownProviderStatusError(
            f"Unknown provider subscription status: {provider_status!r}"
        ) from None
