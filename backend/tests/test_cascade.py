"""
Tests for the member access planner and the provider status table.

Both are pure functions; no database involved.
"""

import pytest

from teamhub.errors import UnknownProviderStatusError
from teamhub.teams.cascade import MemberSnapshot, plan_member_access
from teamhub.teams.models import MemberStatus, SubscriptionStatus
from teamhub.teams.status import map_provider_status


def snapshot(member_id, status=MemberStatus.ACTIVE, user_id="u", has_access=True):
    return MemberSnapshot(
        member_id=member_id,
        status=status.value,
        user_id=user_id,
        has_subscription_access=has_access,
    )


MEMBERS = [
    snapshot("m1", user_id="u1"),
    snapshot("m2", user_id="u2"),
    snapshot("m3", status=MemberStatus.INVITED, user_id=None, has_access=False),
    snapshot("m4", status=MemberStatus.REMOVED, user_id="u4", has_access=False),
]


# =============================================================================
# Test Suite: plan_member_access
# =============================================================================

class TestPlanMemberAccess:

    @pytest.mark.parametrize("status", [SubscriptionStatus.CANCELED, SubscriptionStatus.PAST_DUE])
    def test_revoking_status_revokes_every_active_member(self, status):
        patches = plan_member_access(MEMBERS, status)

        assert [p.member_id for p in patches] == ["m1", "m2"]
        assert all(p.has_subscription_access is False for p in patches)
        assert all(p.user_subscription_status == SubscriptionStatus.CANCELED for p in patches)

    def test_active_grants_access_and_mirrors_active(self):
        revoked = [snapshot("m1", user_id="u1", has_access=False)]

        patches = plan_member_access(revoked, SubscriptionStatus.ACTIVE)

        assert len(patches) == 1
        assert patches[0].has_subscription_access is True
        assert patches[0].user_id == "u1"
        assert patches[0].user_subscription_status == SubscriptionStatus.ACTIVE

    @pytest.mark.parametrize("status", [SubscriptionStatus.TRIALING, SubscriptionStatus.NONE])
    def test_other_statuses_change_nothing(self, status):
        assert plan_member_access(MEMBERS, status) == []

    def test_invited_and_removed_members_are_never_patched(self):
        patches = plan_member_access(MEMBERS, SubscriptionStatus.CANCELED)

        assert "m3" not in {p.member_id for p in patches}
        assert "m4" not in {p.member_id for p in patches}

    def test_no_members(self):
        assert plan_member_access([], SubscriptionStatus.CANCELED) == []


# =============================================================================
# Test Suite: map_provider_status
# =============================================================================

class TestMapProviderStatus:

    @pytest.mark.parametrize(
        "provider_status,expected",
        [
            ("active", SubscriptionStatus.ACTIVE),
            ("trialing", SubscriptionStatus.TRIALING),
            ("past_due", SubscriptionStatus.PAST_DUE),
            ("canceled", SubscriptionStatus.CANCELED),
            ("unpaid", SubscriptionStatus.CANCELED),
            ("incomplete_expired", SubscriptionStatus.CANCELED),
            ("incomplete", SubscriptionStatus.NONE),
            ("paused", SubscriptionStatus.NONE),
        ],
    )
    def test_table(self, provider_status, expected):
        assert map_provider_status(provider_status) == expected

    @pytest.mark.parametrize("provider_status", ["something_new", "", None, "ACTIVE"])
    def test_unknown_status_fails_loudly(self, provider_status):
        with pytest.raises(UnknownProviderStatusError):
            map_provider_status(provider_status)
