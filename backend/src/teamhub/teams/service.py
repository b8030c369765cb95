"""Invitation manager: invite, accept, decline, leave, remove and resend."""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from teamhub.email.service import EmailService
from teamhub.errors import (
    AlreadyExistsError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
)
from teamhub.logging_config import get_logger
from teamhub.settings import Settings
from teamhub.storage.models import utcnow
from teamhub.teams.models import MemberStatus, Team, TeamMember
from teamhub.teams.repository import TeamRepository
from teamhub.teams.tokens import generate_invite_token, invite_expiry

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class InviteResult:
    member: TeamMember
    email_sent: bool


@dataclass
class AcceptResult:
    team: Team
    member: TeamMember


class TeamService:
    """Service for managing team memberships through invitation tokens."""

    def __init__(
        self,
        repository: TeamRepository,
        email_service: EmailService,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.email_service = email_service
        self.settings = settings
        self.clock = clock
        self.logger = get_logger(__name__)

    def _get_team(self, team_id: str) -> Team:
        team = self.repository.get_team(team_id)
        if not team:
            raise NotFoundError("Team not found")
        return team

    def _get_owned_team(self, team_id: str, caller_id: str, action: str) -> Team:
        team = self._get_team(team_id)
        if not team.is_owner(caller_id):
            raise PermissionDeniedError(f"Only the team owner can {action}")
        return team

    def _inviter_name(self, user_id: str) -> str:
        user = self.repository.get_user(user_id)
        return (user.display_name if user else "") or "The team owner"

    async def invite_member(self, team_id: str, email: str, caller_id: str) -> InviteResult:
        """Invite an email address to the team.

        Args:
            team_id: Team ID
            email: Invitee's email
            caller_id: User ID of the person inviting (must be the owner)

        Returns:
            The invited member and whether the email went out
        """
        if not team_id or not email:
            raise InvalidArgumentError("Team ID and email are required")

        email = email.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise InvalidArgumentError("Invalid email address")

        team = self._get_owned_team(team_id, caller_id, "invite members")

        if not team.status.grants_access:
            raise PreconditionError("Team subscription is not active. Please renew the subscription.")

        if email == (team.owner_email or "").lower():
            raise InvalidArgumentError("The team owner cannot be invited to their own team")

        existing = self.repository.find_open_member_by_email(team_id, email)
        if existing:
            if existing.status == MemberStatus.ACTIVE.value:
                raise AlreadyExistsError("This email address is already a team member")
            raise AlreadyExistsError("An invitation was already sent to this email address")

        now = self.clock()
        token = generate_invite_token()
        member = self.repository.add_invited_member(
            TeamMember(
                team_id=team_id,
                email=email,
                status=MemberStatus.INVITED.value,
                invite_token=token,
                invite_expires_at=invite_expiry(now, self.settings.invite_expiry_days),
                invited_at=now,
                invited_by=caller_id,
                has_subscription_access=False,
            )
        )

        email_sent = await self.email_service.send_team_invite_email(
            to_email=email,
            team_name=team.name,
            inviter_name=self._inviter_name(caller_id),
            invite_token=token,
            expiry_days=self.settings.invite_expiry_days,
        )
        if not email_sent:
            self.logger.warning("team_invite_email_not_sent", team_id=team_id, member_id=member.id)

        self.logger.info(
            "team_member_invited",
            team_id=team_id,
            member_id=member.id,
            email=email,
        )
        return InviteResult(member=member, email_sent=email_sent)

    async def accept_invite(self, token: str, caller_id: str) -> AcceptResult:
        """Accept a team invitation.

        Args:
            token: Invitation token
            caller_id: User ID accepting the invitation

        Returns:
            The team joined and the now active membership
        """
        if not token:
            raise InvalidArgumentError("Invitation token is required")

        invitation = self.repository.find_invited_member_by_token(token)
        if not invitation:
            raise NotFoundError("Invalid or expired invitation")

        if invitation.is_expired(self.clock()):
            raise PreconditionError("Invitation has expired")

        team = self._get_team(invitation.team_id)
        if team.is_owner(caller_id):
            raise PreconditionError("Team owner cannot join their own team as a member")
        if not team.status.grants_access:
            raise PreconditionError(
                "Team subscription is not active. Please contact the team owner."
            )

        user = self.repository.get_user(caller_id)
        if not user:
            raise NotFoundError("User not found")
        if user.team_id and user.team_id != team.id:
            raise PreconditionError(
                "You already belong to another team. Leave your current team first."
            )
        if self.repository.find_active_member_by_user(team.id, caller_id):
            raise PreconditionError("You are already a member of this team")

        member = self.repository.accept_invite(
            member_id=invitation.id,
            user_id=caller_id,
            name=user.display_name or None,
            team_status=team.status,
        )

        self.logger.info(
            "team_invitation_accepted",
            team_id=team.id,
            user_id=caller_id,
            member_id=member.id,
        )
        return AcceptResult(team=team, member=member)

    def decline_invite(self, token: str) -> str:
        """Decline an invitation; the membership record is deleted.

        Expired but unswept invitations can still be declined, which cleans them
        up and releases their slot in the member count.

        Returns:
            The team ID the invitation belonged to
        """
        if not token:
            raise InvalidArgumentError("Invitation token is required")

        invitation = self.repository.find_invited_member_by_token(token)
        if not invitation:
            raise NotFoundError("Invalid or expired invitation")

        expired = invitation.is_expired(self.clock())
        self.repository.delete_invited_member(invitation.id)

        self.logger.info(
            "team_invitation_declined",
            team_id=invitation.team_id,
            member_id=invitation.id,
            expired=expired,
        )
        return invitation.team_id

    def leave_team(self, caller_id: str) -> str:
        """Leave the caller's current team.

        Returns:
            The team ID that was left
        """
        user = self.repository.get_user(caller_id)
        if not user or not user.team_id:
            raise PreconditionError("You are not a member of a team")

        team = self._get_team(user.team_id)
        if team.is_owner(caller_id):
            raise PreconditionError(
                "Team owner cannot leave the team. Delete the team or transfer ownership first."
            )

        member = self.repository.find_active_member_by_user(team.id, caller_id)
        if not member:
            raise NotFoundError("Team member not found")

        self.repository.mark_member_removed(member.id)

        self.logger.info("team_member_left", team_id=team.id, user_id=caller_id)
        return team.id

    def remove_member(self, team_id: str, member_id: str, caller_id: str) -> TeamMember:
        """Remove a member (or revoke an invitation) as the team owner."""
        if not team_id or not member_id:
            raise InvalidArgumentError("Team ID and member ID are required")

        team = self._get_owned_team(team_id, caller_id, "remove members")

        member = self.repository.get_member(team_id, member_id)
        if not member:
            raise NotFoundError("Team member not found")

        if member.user_id and team.is_owner(member.user_id):
            raise PreconditionError("Team owner cannot be removed")

        removed = self.repository.mark_member_removed(member.id)

        self.logger.info(
            "team_member_removed",
            team_id=team_id,
            member_id=member_id,
            removed_by=caller_id,
        )
        return removed

    async def resend_invite(self, team_id: str, member_id: str, caller_id: str) -> InviteResult:
        """Extend a pending invitation by the full expiry window and email it again.

        The token is kept unless `rotate_invite_token_on_resend` is enabled.
        """
        if not team_id or not member_id:
            raise InvalidArgumentError("Team ID and member ID are required")

        team = self._get_owned_team(team_id, caller_id, "resend invitations")

        member = self.repository.get_member(team_id, member_id)
        if not member:
            raise NotFoundError("Team member not found")

        if member.status == MemberStatus.ACTIVE.value:
            raise PreconditionError("Invitation was already accepted")
        if member.status != MemberStatus.INVITED.value:
            raise PreconditionError("Member was already removed")

        new_token = generate_invite_token() if self.settings.rotate_invite_token_on_resend else None
        member = self.repository.update_invite(
            member.id,
            expires_at=invite_expiry(self.clock(), self.settings.invite_expiry_days),
            token=new_token,
        )

        email_sent = await self.email_service.send_team_invite_email(
            to_email=member.email,
            team_name=team.name,
            inviter_name=self._inviter_name(caller_id),
            invite_token=member.invite_token,
            expiry_days=self.settings.invite_expiry_days,
            reminder=True,
        )

        self.logger.info(
            "team_invitation_resent",
            team_id=team_id,
            member_id=member_id,
            token_rotated=new_token is not None,
            email_sent=email_sent,
        )
        return InviteResult(member=member, email_sent=email_sent)
