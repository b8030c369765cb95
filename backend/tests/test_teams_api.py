"""
Tests for the team callable operations.

Tests cover:
- Envelope mapping for success, domain errors, bad input and missing auth
- The invite -> accept flow over HTTP
- Dashboard, access check and member listing
- Owner subscription management
- Fail-fast application configuration
"""

import pytest
from fastapi.testclient import TestClient

from conftest import auth_headers, make_token
from teamhub.api.main import create_app
from teamhub.api.rate_limit import limiter
from teamhub.errors import ConfigurationError
from teamhub.settings import Settings
from teamhub.teams.models import SubscriptionStatus

BASE = "/api/v1/teams"


@pytest.fixture
def app(settings, db, gateway, email_service):
    return create_app(settings=settings, db=db, gateway=gateway, email_service=email_service)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def call(client, operation: str, body: dict | None = None, user_id: str | None = None):
    headers = auth_headers(user_id) if user_id else {}
    return client.post(f"{BASE}/{operation}", json=body or {}, headers=headers)


def invite(client, team, owner, email="a@example.com"):
    return call(client, "invite-member", {"team_id": team.id, "email": email}, owner.id)


# =============================================================================
# Test Suite: envelope
# =============================================================================

class TestEnvelope:

    def test_success_envelope(self, client, team, owner, email_service):
        response = invite(client, team, owner)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["member_id"]
        assert body["email_sent"] is True
        assert len(email_service.sent) == 1

    def test_missing_token_is_unauthenticated(self, client, team):
        response = call(client, "invite-member", {"team_id": team.id, "email": "a@example.com"})

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Authentication required",
            "code": "unauthenticated",
        }

    def test_token_signed_with_other_secret(self, client, team, owner):
        response = client.post(
            f"{BASE}/leave-team",
            json={},
            headers={"Authorization": f"Bearer {make_token(owner.id, secret='someone-else')}"},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "unauthenticated"

    def test_domain_error_envelope(self, client, team, owner):
        response = call(client, "leave-team", {}, owner.id)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "failed-precondition"
        assert "Team owner cannot leave the team" in body["error"]

    def test_invalid_body_envelope(self, client, team, owner):
        response = call(client, "invite-member", {"team_id": team.id, "email": "nope"}, owner.id)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["code"] == "invalid-argument"

    def test_permission_denied_envelope(self, client, repository, team):
        repository.create_user(email="s@example.com", user_id="user_stranger")

        response = call(client, "invite-member", {"team_id": team.id, "email": "x@example.com"}, "user_stranger")

        assert response.json()["code"] == "permission-denied"

    def test_unexpected_error_becomes_internal(self, client, app, team, owner, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("database on fire")

        monkeypatch.setattr(app.state.services.queries, "get_dashboard", explode)

        response = call(client, "get-dashboard", {}, owner.id)

        assert response.status_code == 200
        assert response.json()["code"] == "internal"
        assert "database on fire" not in response.json()["error"]


# =============================================================================
# Test Suite: invitation flow
# =============================================================================

class TestInvitationFlow:

    def test_invite_accept_dashboard(self, client, repository, team, owner, email_service):
        invitee = repository.create_user(email="a@example.com", first_name="Ann", user_id="user_ann")
        invite(client, team, owner)
        token = email_service.sent[0]["invite_token"]

        accepted = call(client, "accept-invite", {"invite_token": token}, invitee.id)

        assert accepted.json() == {"success": True, "team_id": team.id, "team_name": team.name}

        dashboard = call(client, "get-dashboard", {}, invitee.id).json()
        assert dashboard["success"] is True
        assert dashboard["data"]["is_owner"] is False
        assert dashboard["data"]["stats"] == {"total_members": 1, "active_members": 1, "invited_members": 0}

    def test_decline_needs_no_auth(self, client, repository, team, owner, email_service):
        invite(client, team, owner)
        token = email_service.sent[0]["invite_token"]

        response = call(client, "decline-invite", {"invite_token": token})

        assert response.json() == {"success": True}
        assert repository.get_team(team.id).member_count == 0

    def test_inactive_team_invite_rejected(self, client, make_team, repository):
        lapsed_owner = repository.create_user(email="l@example.com", first_name="Lee", user_id="user_lapsed")
        lapsed = make_team(lapsed_owner, status=SubscriptionStatus.NONE, subscription_id="sub_lapsed")

        response = invite(client, lapsed, lapsed_owner)

        assert response.json()["code"] == "failed-precondition"
        assert "Team subscription is not active" in response.json()["error"]

    def test_resend_and_remove(self, client, repository, team, owner, email_service):
        member_id = invite(client, team, owner).json()["member_id"]

        resent = call(client, "resend-invite", {"team_id": team.id, "member_id": member_id}, owner.id)
        removed = call(client, "remove-member", {"team_id": team.id, "member_id": member_id}, owner.id)

        assert resent.json() == {"success": True, "email_sent": True}
        assert removed.json() == {"success": True}
        assert repository.get_team(team.id).member_count == 0


# =============================================================================
# Test Suite: queries
# =============================================================================

class TestQueries:

    def test_dashboard_for_owner_hides_tokens(self, client, team, owner):
        invite(client, team, owner, "x@example.com")
        invite(client, team, owner, "y@example.com")

        data = call(client, "get-dashboard", {}, owner.id).json()["data"]

        assert data["is_owner"] is True
        assert data["owner"] == {"id": owner.id, "name": "Olivia Owner", "email": "owner@example.com"}
        assert data["stats"]["invited_members"] == 2
        assert data["subscription"]["is_active"] is True
        assert data["subscription"]["plan"] == "monthly"
        assert [m["email"] for m in data["members"]] == ["y@example.com", "x@example.com"]
        assert all("invite_token" not in m for m in data["members"])

    def test_dashboard_without_team(self, client, repository):
        repository.create_user(email="lone@example.com", user_id="user_lone")

        response = call(client, "get-dashboard", {}, "user_lone")

        assert response.json()["code"] == "failed-precondition"

    def test_access_check_anonymous(self, client):
        response = call(client, "check-subscription-access")

        assert response.json() == {"success": True, "has_access": False, "reason": "not_authenticated"}

    def test_access_check_owner(self, client, team, owner):
        body = call(client, "check-subscription-access", {}, owner.id).json()

        assert body["has_access"] is True
        assert body["reason"] == "team_owner"

    async def test_access_check_member_follows_team_status(self, client, reconciler, team, owner, add_active_member):
        await add_active_member(team, owner, "m@example.com", "user_m")

        active = call(client, "check-subscription-access", {}, "user_m").json()
        reconciler.update_team_subscription(team.stripe_subscription_id, SubscriptionStatus.PAST_DUE)
        inactive = call(client, "check-subscription-access", {}, "user_m").json()

        assert active["reason"] == "team_member"
        assert active["has_access"] is True
        assert inactive["reason"] == "subscription_inactive"
        assert inactive["has_access"] is False

    def test_access_check_trialing_owner(self, client, make_team, owner):
        make_team(owner, status=SubscriptionStatus.TRIALING)

        body = call(client, "check-subscription-access", {}, owner.id).json()

        assert body["has_access"] is True
        assert body["reason"] == "team_owner"

    def test_access_check_unknown_user(self, client):
        body = call(client, "check-subscription-access", {}, "user_ghost").json()

        assert body["reason"] == "user_not_found"

    def test_access_check_no_subscription(self, client, repository):
        repository.create_user(email="lone@example.com", user_id="user_lone")

        body = call(client, "check-subscription-access", {}, "user_lone").json()

        assert body["reason"] == "no_subscription"

    async def test_list_members(self, client, repository, team, owner, add_active_member):
        await add_active_member(team, owner, "m@example.com", "user_m")
        invite(client, team, owner, "pending@example.com")
        repository.create_user(email="s@example.com", user_id="user_stranger")

        as_member = call(client, "list-members", {"team_id": team.id}, "user_m").json()
        as_stranger = call(client, "list-members", {"team_id": team.id}, "user_stranger").json()

        assert as_member["success"] is True
        assert len(as_member["members"]) == 1
        assert set(as_member["members"][0]) == {"id", "name", "joined_at", "is_active"}
        assert as_stranger["code"] == "permission-denied"


# =============================================================================
# Test Suite: owner subscription management
# =============================================================================

class TestSubscriptionManagement:

    def test_cancel_and_reactivate(self, client, gateway, team, owner):
        cancel = call(client, "cancel-subscription", {}, owner.id).json()
        reactivate = call(client, "reactivate-subscription", {}, owner.id).json()

        assert cancel["success"] is True
        assert reactivate["success"] is True
        assert gateway.cancel_requests == [("sub_123", True), ("sub_123", False)]

    def test_status_reports_pending_cancellation(self, client, gateway, team, owner):
        gateway.add_subscription("sub_123", status="active")

        body = call(client, "get-subscription-status", {}, owner.id).json()

        assert body["subscription"]["status"] == "active"
        assert body["subscription"]["cancel_at_period_end"] is False

    async def test_member_cannot_cancel(self, client, gateway, team, owner, add_active_member):
        await add_active_member(team, owner, "m@example.com", "user_m")

        body = call(client, "cancel-subscription", {}, "user_m").json()

        assert body["code"] == "permission-denied"
        assert gateway.cancel_requests == []


# =============================================================================
# Test Suite: application configuration
# =============================================================================

class TestCreateApp:

    def test_missing_stripe_config_fails_fast(self, tmp_path):
        settings = Settings(_env_file=None, env="test", database_url=f"sqlite:///{tmp_path / 'x.db'}")

        with pytest.raises(ConfigurationError, match="STRIPE_SECRET_KEY"):
            create_app(settings=settings)

    def test_insecure_identity_secret_rejected_in_production(self, tmp_path, gateway):
        settings = Settings(
            _env_file=None,
            env="production",
            database_url=f"sqlite:///{tmp_path / 'x.db'}",
            stripe_secret_key="sk_live_x",
            stripe_webhook_secret="whsec_x",
        )

        with pytest.raises(ConfigurationError, match="IDENTITY_JWT_SECRET"):
            create_app(settings=settings, gateway=gateway)

    def test_rate_limiter_follows_injected_settings(self, tmp_path, db, gateway, monkeypatch):
        monkeypatch.setattr(limiter, "enabled", limiter.enabled)
        production = Settings(
            _env_file=None,
            env="production",
            database_url=f"sqlite:///{tmp_path / 'x.db'}",
            identity_jwt_secret="a-production-secret-that-is-long-enough-0123456789",
        )
        development = Settings(_env_file=None, env="development")

        create_app(settings=production, db=db, gateway=gateway)
        assert limiter.enabled is True

        create_app(settings=development, db=db, gateway=gateway)
        assert limiter.enabled is False

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
