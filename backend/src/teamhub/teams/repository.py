"""Store access for teams, members and the users' subscription mirror.

Every public method runs in its own `db.session()` and therefore commits as one
atomic batch. Returned ORM objects are detached; relationships must not be
traversed on them.
"""

from datetime import datetime
from typing import Callable, Iterable

from sqlalchemy.exc import IntegrityError

from teamhub.auth.models import UserAccount
from teamhub.errors import AlreadyExistsError, NotFoundError, PreconditionError
from teamhub.logging_config import get_logger
from teamhub.storage.db import Database
from teamhub.storage.models import utcnow
from teamhub.teams.cascade import MemberAccessPatch, MemberSnapshot
from teamhub.teams.models import (
    OPEN_MEMBER_STATUSES,
    MemberStatus,
    SubscriptionStatus,
    Team,
    TeamMember,
)

logger = get_logger(__name__)

AccessPlanner = Callable[[Iterable[MemberSnapshot], SubscriptionStatus], list[MemberAccessPatch]]


class TeamRepository:
    """Entitlement store operations used by the reconciler and invitation manager."""

    def __init__(self, db: Database):
        self.db = db

    # ==================== USERS ====================

    def get_user(self, user_id: str) -> UserAccount | None:
        with self.db.session() as session:
            return session.query(UserAccount).filter(UserAccount.id == user_id).first()

    def create_user(
        self,
        email: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        user_id: str | None = None,
    ) -> UserAccount:
        """Register a user profile known to the identity provider."""
        with self.db.session() as session:
            user = UserAccount(
                email=email,
                first_name=first_name,
                last_name=last_name,
            )
            if user_id:
                user.id = user_id
            session.add(user)
            session.flush()
            return user

    # ==================== TEAMS ====================

    def create_team(self, team: Team) -> Team:
        """Insert a team and make its owner's mirror point at it, atomically."""
        with self.db.session() as session:
            owner = session.query(UserAccount).filter(
                UserAccount.id == team.owner_id
            ).first()
            if not owner:
                raise NotFoundError(f"User not found: {team.owner_id}")

            session.add(team)
            session.flush()  # Get team ID

            owner.team_id = team.id
            owner.is_team_owner = True
            owner.subscription_status = team.subscription_status
            owner.stripe_customer_id = team.stripe_customer_id
            owner.stripe_subscription_id = team.stripe_subscription_id
            owner.updated_at = utcnow()
            return team

    def get_team(self, team_id: str) -> Team | None:
        with self.db.session() as session:
            return session.query(Team).filter(Team.id == team_id).first()

    def find_team_by_subscription(self, stripe_subscription_id: str) -> Team | None:
        with self.db.session() as session:
            return session.query(Team).filter(
                Team.stripe_subscription_id == stripe_subscription_id
            ).first()

    def apply_subscription_change(
        self,
        stripe_subscription_id: str,
        status: SubscriptionStatus,
        end_date: datetime | None,
        planner: AccessPlanner,
    ) -> tuple[Team, list[MemberAccessPatch]]:
        """Write a status change to the team, its owner and every member, atomically.

        The planner decides the member patches from the members read inside the
        same transaction.

        Raises:
            NotFoundError: no team carries this subscription id
        """
        with self.db.session() as session:
            team = session.query(Team).filter(
                Team.stripe_subscription_id == stripe_subscription_id
            ).first()
            if not team:
                raise NotFoundError(
                    f"No team found with Stripe subscription ID: {stripe_subscription_id}"
                )

            now = utcnow()
            team.subscription_status = status.value
            if end_date is not None:
                team.subscription_end_date = end_date
            team.updated_at = now

            owner = session.query(UserAccount).filter(UserAccount.id == team.owner_id).first()
            if owner:
                owner.subscription_status = status.value
                owner.updated_at = now

            members = session.query(TeamMember).filter(TeamMember.team_id == team.id).all()
            snapshots = [
                MemberSnapshot(
                    member_id=m.id,
                    status=m.status,
                    user_id=m.user_id,
                    has_subscription_access=m.has_subscription_access,
                )
                for m in members
            ]
            patches = planner(snapshots, status)

            by_id = {m.id: m for m in members}
            user_ids = [p.user_id for p in patches if p.user_id]
            users = {}
            if user_ids:
                users = {
                    u.id: u
                    for u in session.query(UserAccount).filter(UserAccount.id.in_(user_ids)).all()
                }
            for patch in patches:
                by_id[patch.member_id].has_subscription_access = patch.has_subscription_access
                user = users.get(patch.user_id)
                if user is not None:
                    user.subscription_status = patch.user_subscription_status.value
                    user.updated_at = now

            session.flush()
            return team, patches

    def delete_team(self, team_id: str) -> Team:
        """Delete a team with its members and clear the owner's mirror."""
        with self.db.session() as session:
            team = session.query(Team).filter(Team.id == team_id).first()
            if not team:
                raise NotFoundError(f"Team not found: {team_id}")

            session.query(TeamMember).filter(TeamMember.team_id == team_id).delete()

            owner = session.query(UserAccount).filter(UserAccount.id == team.owner_id).first()
            if owner:
                owner.team_id = None
                owner.is_team_owner = False
                owner.subscription_status = SubscriptionStatus.NONE.value
                owner.stripe_customer_id = None
                owner.stripe_subscription_id = None
                owner.updated_at = utcnow()

            session.delete(team)
            return team

    # ==================== MEMBERS ====================

    def get_member(self, team_id: str, member_id: str) -> TeamMember | None:
        with self.db.session() as session:
            return session.query(TeamMember).filter(
                TeamMember.team_id == team_id,
                TeamMember.id == member_id,
            ).first()

    def list_members(
        self,
        team_id: str,
        statuses: Iterable[str] | None = None,
    ) -> list[TeamMember]:
        """Members of a team, newest invitation first."""
        with self.db.session() as session:
            query = session.query(TeamMember).filter(TeamMember.team_id == team_id)
            if statuses is not None:
                query = query.filter(TeamMember.status.in_(list(statuses)))
            return query.order_by(TeamMember.invited_at.desc()).all()

    def find_open_member_by_email(self, team_id: str, email: str) -> TeamMember | None:
        """Invited or active member holding this (lowercased) email."""
        with self.db.session() as session:
            return session.query(TeamMember).filter(
                TeamMember.team_id == team_id,
                TeamMember.email == email,
                TeamMember.status.in_(OPEN_MEMBER_STATUSES),
            ).first()

    def find_invited_member_by_token(self, token: str) -> TeamMember | None:
        with self.db.session() as session:
            return session.query(TeamMember).filter(
                TeamMember.invite_token == token,
                TeamMember.status == MemberStatus.INVITED.value,
            ).first()

    def find_active_member_by_user(self, team_id: str, user_id: str) -> TeamMember | None:
        with self.db.session() as session:
            return session.query(TeamMember).filter(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
                TeamMember.status == MemberStatus.ACTIVE.value,
            ).first()

    def add_invited_member(self, member: TeamMember) -> TeamMember:
        """Insert an invited member and bump the team's member count.

        Raises:
            AlreadyExistsError: the email already holds an invited or active membership
        """
        try:
            with self.db.session() as session:
                session.add(member)
                self._adjust_member_count(session, member.team_id, +1)
                session.flush()
        except IntegrityError:
            raise AlreadyExistsError("An invitation was already sent to this email address")
        return member

    def accept_invite(
        self,
        member_id: str,
        user_id: str,
        name: str | None,
        team_status: SubscriptionStatus,
    ) -> TeamMember:
        """Bind a user to an invited membership and mirror the team status onto them."""
        with self.db.session() as session:
            member = session.query(TeamMember).filter(TeamMember.id == member_id).first()
            if not member or member.status != MemberStatus.INVITED.value:
                # Lost a race with decline/remove/another accept
                raise PreconditionError("Invitation is no longer pending")

            now = utcnow()
            member.user_id = user_id
            member.name = name or member.email
            member.status = MemberStatus.ACTIVE.value
            member.joined_at = now
            member.has_subscription_access = team_status.grants_access
            member.invite_token = None
            member.invite_expires_at = None

            user = session.query(UserAccount).filter(UserAccount.id == user_id).first()
            if not user:
                raise NotFoundError(f"User not found: {user_id}")
            user.team_id = member.team_id
            user.subscription_status = team_status.value
            user.updated_at = now
            return member

    def delete_invited_member(self, member_id: str) -> TeamMember:
        """Delete a still-invited member and decrement the team's member count."""
        with self.db.session() as session:
            member = session.query(TeamMember).filter(
                TeamMember.id == member_id,
                TeamMember.status == MemberStatus.INVITED.value,
            ).first()
            if not member:
                raise NotFoundError("Invalid or expired invitation")
            session.delete(member)
            self._adjust_member_count(session, member.team_id, -1)
            return member

    def mark_member_removed(self, member_id: str) -> TeamMember:
        """Mark a membership removed, clear its user's mirror, decrement the count."""
        with self.db.session() as session:
            member = session.query(TeamMember).filter(TeamMember.id == member_id).first()
            if not member:
                raise NotFoundError("Team member not found")
            if member.status == MemberStatus.REMOVED.value:
                raise PreconditionError("Member was already removed")

            now = utcnow()
            member.status = MemberStatus.REMOVED.value
            member.removed_at = now
            member.has_subscription_access = False
            member.invite_token = None
            member.invite_expires_at = None

            if member.user_id:
                user = session.query(UserAccount).filter(UserAccount.id == member.user_id).first()
                if user and user.team_id == member.team_id:
                    user.team_id = None
                    user.subscription_status = SubscriptionStatus.NONE.value
                    user.updated_at = now

            self._adjust_member_count(session, member.team_id, -1)
            return member

    def update_invite(
        self,
        member_id: str,
        expires_at: datetime,
        token: str | None = None,
    ) -> TeamMember:
        """Move an invitation's expiry, optionally swapping its token."""
        with self.db.session() as session:
            member = session.query(TeamMember).filter(
                TeamMember.id == member_id,
                TeamMember.status == MemberStatus.INVITED.value,
            ).first()
            if not member:
                raise PreconditionError("Invitation is no longer pending")
            member.invite_expires_at = expires_at
            if token is not None:
                member.invite_token = token
            return member

    def _adjust_member_count(self, session, team_id: str, delta: int) -> None:
        session.query(Team).filter(Team.id == team_id).update(
            {
                Team.member_count: Team.member_count + delta,
                Team.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
