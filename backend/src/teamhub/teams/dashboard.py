"""Read-only membership queries for dashboards and access checks."""

from datetime import datetime
from typing import Any

from teamhub.errors import NotFoundError, PermissionDeniedError, PreconditionError
from teamhub.logging_config import get_logger
from teamhub.teams.models import (
    OPEN_MEMBER_STATUSES,
    MemberStatus,
    SubscriptionStatus,
    Team,
    TeamMember,
)
from teamhub.teams.repository import TeamRepository

logger = get_logger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_team(team: Team) -> dict[str, Any]:
    return {
        "id": team.id,
        "name": team.name,
        "owner_id": team.owner_id,
        "owner_email": team.owner_email,
        "owner_name": team.owner_name,
        "subscription_status": team.subscription_status,
        "subscription_plan": team.subscription_plan,
        "member_count": team.member_count,
        "created_at": _iso(team.created_at),
        "updated_at": _iso(team.updated_at),
    }


def serialize_member(member: TeamMember) -> dict[str, Any]:
    """Member as shown to the team owner. Invite tokens are never exposed."""
    return {
        "id": member.id,
        "email": member.email,
        "name": member.name,
        "user_id": member.user_id,
        "status": member.status,
        "has_subscription_access": member.has_subscription_access,
        "invited_at": _iso(member.invited_at),
        "invite_expires_at": _iso(member.invite_expires_at),
        "joined_at": _iso(member.joined_at),
    }


def serialize_subscription(team: Team) -> dict[str, Any]:
    return {
        "status": team.subscription_status,
        "plan": team.subscription_plan,
        "start_date": _iso(team.subscription_start_date),
        "end_date": _iso(team.subscription_end_date),
        "trial_end_date": _iso(team.trial_end_date),
        "is_active": team.status.grants_access,
    }


class MembershipQueries:
    """Dashboard, access check and member listing."""

    def __init__(self, repository: TeamRepository):
        self.repository = repository

    def _caller_team(self, caller_id: str) -> Team:
        user = self.repository.get_user(caller_id)
        if not user or not user.team_id:
            raise PreconditionError("You are not a member of a team")
        team = self.repository.get_team(user.team_id)
        if not team:
            raise NotFoundError("Team not found")
        return team

    def get_dashboard(self, caller_id: str) -> dict[str, Any]:
        """Complete team data for the management dashboard.

        Args:
            caller_id: Authenticated user ID

        Returns:
            team, members, owner, stats, subscription and is_owner
        """
        team = self._caller_team(caller_id)
        members = self.repository.list_members(team.id, OPEN_MEMBER_STATUSES)

        owner_user = self.repository.get_user(team.owner_id)
        owner = {
            "id": team.owner_id,
            "name": (owner_user.display_name if owner_user else "") or team.owner_name,
            "email": team.owner_email,
        }

        active = sum(1 for m in members if m.status == MemberStatus.ACTIVE.value)
        invited = sum(1 for m in members if m.status == MemberStatus.INVITED.value)

        logger.info("team_dashboard_fetched", team_id=team.id, member_count=len(members))

        return {
            "team": serialize_team(team),
            "members": [serialize_member(m) for m in members],
            "owner": owner,
            "stats": {
                "total_members": len(members),
                "active_members": active,
                "invited_members": invited,
            },
            "subscription": serialize_subscription(team),
            "is_owner": team.is_owner(caller_id),
        }

    def check_subscription_access(self, caller_id: str | None) -> dict[str, Any]:
        """Whether the caller may consume subscription-gated content, and why."""
        if not caller_id:
            return {"has_access": False, "reason": "not_authenticated"}

        user = self.repository.get_user(caller_id)
        if not user:
            return {"has_access": False, "reason": "user_not_found"}

        if user.is_team_owner and SubscriptionStatus(user.subscription_status).grants_access:
            return {
                "has_access": True,
                "reason": "team_owner",
                "subscription_status": user.subscription_status,
            }

        if user.team_id:
            team = self.repository.get_team(user.team_id)
            if team:
                has_access = team.status.grants_access
                logger.info(
                    "subscription_access_checked",
                    user_id=caller_id,
                    team_id=team.id,
                    has_access=has_access,
                    team_status=team.subscription_status,
                )
                return {
                    "has_access": has_access,
                    "reason": "team_member" if has_access else "subscription_inactive",
                    "team_name": team.name,
                    "subscription_status": team.subscription_status,
                }

        return {"has_access": False, "reason": "no_subscription"}

    def list_members(self, team_id: str, caller_id: str) -> list[dict[str, Any]]:
        """Active members with non-sensitive fields, for owners and members alike."""
        team = self.repository.get_team(team_id)
        if not team:
            raise NotFoundError("Team not found")

        if not team.is_owner(caller_id) and not self.repository.find_active_member_by_user(
            team_id, caller_id
        ):
            raise PermissionDeniedError("Only team members can list the team")

        members = self.repository.list_members(team_id, [MemberStatus.ACTIVE.value])
        return [
            {
                "id": m.id,
                "name": m.name,
                "joined_at": _iso(m.joined_at),
                "is_active": m.status == MemberStatus.ACTIVE.value,
            }
            for m in members
        ]
