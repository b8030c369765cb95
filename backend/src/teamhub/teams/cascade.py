"""Member access fan-out for a team-level subscription status change.

The decision is a pure function over plain values so it can be tested without a
store; the repository applies the resulting patches in one transaction.
"""

from dataclasses import dataclass
from typing import Iterable

from teamhub.teams.models import MemberStatus, SubscriptionStatus

REVOKING_STATUSES = frozenset({SubscriptionStatus.CANCELED, SubscriptionStatus.PAST_DUE})
GRANTING_STATUSES = frozenset({SubscriptionStatus.ACTIVE})


@dataclass(frozen=True)
class MemberSnapshot:
    """What the planner needs to know about one member."""
    member_id: str
    status: str
    user_id: str | None
    has_subscription_access: bool


@dataclass(frozen=True)
class MemberAccessPatch:
    """One member's new access flag, and the mirror status for its bound user."""
    member_id: str
    has_subscription_access: bool
    user_id: str | None
    user_subscription_status: SubscriptionStatus


def plan_member_access(
    members: Iterable[MemberSnapshot],
    new_status: SubscriptionStatus,
) -> list[MemberAccessPatch]:
    """Return the patches that bring every active member in line with new_status.

    canceled/past_due revoke access and mirror `canceled` onto bound users,
    active grants access and mirrors `active`. Other statuses change nothing.
    Invited and removed members are never touched.
    """
    if new_status in REVOKING_STATUSES:
        has_access, mirror = False, SubscriptionStatus.CANCELED
    elif new_status in GRANTING_STATUSES:
        has_access, mirror = True, SubscriptionStatus.ACTIVE
    else:
        return []

    return [
        MemberAccessPatch(
            member_id=member.member_id,
            has_subscription_access=has_access,
            user_id=member.user_id,
            user_subscription_status=mirror,
        )
        for member in members
        if member.status == MemberStatus.ACTIVE.value
    ]
