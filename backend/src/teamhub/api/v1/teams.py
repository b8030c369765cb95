"""Team callable operations.

Every endpoint is a POST with a small JSON body and answers with the envelope
`{"success": true, ...}` or `{"success": false, "error": ..., "code": ...}`.
"""

import inspect
from typing import Any, Callable

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr, Field

from teamhub.api.dependencies import Services, error_envelope, get_services
from teamhub.api.rate_limit import limiter
from teamhub.auth.middleware import get_current_user_id, require_auth
from teamhub.errors import InternalError, TeamHubError
from teamhub.logging_config import get_logger

router = APIRouter(prefix="/teams", tags=["teams"])
logger = get_logger(__name__)


# ─── Request Models ──────────────────────────────────────────────────────────

class InviteMemberRequest(BaseModel):
    """Request to invite a team member."""
    team_id: str = Field(..., min_length=1)
    email: EmailStr


class InviteTokenRequest(BaseModel):
    """Request carrying an invitation token (accept and decline)."""
    invite_token: str = Field(..., min_length=1)


class MemberRequest(BaseModel):
    """Request targeting one member of a team."""
    team_id: str = Field(..., min_length=1)
    member_id: str = Field(..., min_length=1)


class TeamRequest(BaseModel):
    team_id: str = Field(..., min_length=1)


async def _respond(operation: str, call: Callable[[], Any]):
    """Run a service call and wrap its result (or error) in the envelope."""
    try:
        result = call()
        if inspect.isawaitable(result):
            result = await result
    except TeamHubError as e:
        logger.info("team_operation_rejected", operation=operation, code=e.code, error=e.message)
        return error_envelope(e)
    except Exception as e:
        logger.exception("team_operation_failed", operation=operation, error=str(e))
        return error_envelope(InternalError("Something went wrong. Please try again."))
    return {"success": True, **(result or {})}


# ─── Invitation Manager ──────────────────────────────────────────────────────

@router.post("/invite-member")
@limiter.limit("20/minute")
async def invite_member(
    request: Request,
    body: InviteMemberRequest,
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Invite an email address to the caller's team."""
    async def call():
        result = await services.teams.invite_member(body.team_id, body.email, user_id)
        return {"member_id": result.member.id, "email_sent": result.email_sent}

    return await _respond("invite_member", call)


@router.post("/accept-invite")
@limiter.limit("10/minute")
async def accept_invite(
    request: Request,
    body: InviteTokenRequest,
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Join a team with an invitation token."""
    async def call():
        result = await services.teams.accept_invite(body.invite_token, user_id)
        return {"team_id": result.team.id, "team_name": result.team.name}

    return await _respond("accept_invite", call)


@router.post("/decline-invite")
@limiter.limit("10/minute")
async def decline_invite(
    request: Request,
    body: InviteTokenRequest,
    services: Services = Depends(get_services),
):
    """Decline an invitation. The token itself is the credential."""
    def call():
        services.teams.decline_invite(body.invite_token)
        return {}

    return await _respond("decline_invite", call)


@router.post("/leave-team")
async def leave_team(
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    def call():
        services.teams.leave_team(user_id)
        return {}

    return await _respond("leave_team", call)


@router.post("/remove-member")
async def remove_member(
    body: MemberRequest,
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Remove a member or revoke a pending invitation (owner only)."""
    def call():
        services.teams.remove_member(body.team_id, body.member_id, user_id)
        return {}

    return await _respond("remove_member", call)


@router.post("/resend-invite")
@limiter.limit("20/minute")
async def resend_invite(
    request: Request,
    body: MemberRequest,
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    async def call():
        result = await services.teams.resend_invite(body.team_id, body.member_id, user_id)
        return {"email_sent": result.email_sent}

    return await _respond("resend_invite", call)


# ─── Membership Queries ──────────────────────────────────────────────────────

@router.post("/get-dashboard")
async def get_dashboard(
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Team data for the management dashboard."""
    return await _respond(
        "get_dashboard",
        lambda: {"data": services.queries.get_dashboard(user_id)},
    )


@router.post("/check-subscription-access")
async def check_subscription_access(
    user_id: str | None = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Whether the caller has subscription access. Anonymous callers get a reason."""
    return await _respond(
        "check_subscription_access",
        lambda: services.queries.check_subscription_access(user_id),
    )


@router.post("/list-members")
async def list_members(
    body: TeamRequest,
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    return await _respond(
        "list_members",
        lambda: {"members": services.queries.list_members(body.team_id, user_id)},
    )


# ─── Owner Subscription Management ───────────────────────────────────────────

@router.post("/get-subscription-status")
async def get_subscription_status(
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    async def call():
        return {"subscription": await services.subscriptions.get_subscription_status(user_id)}

    return await _respond("get_subscription_status", call)


@router.post("/cancel-subscription")
async def cancel_subscription(
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Cancel the team subscription at the end of the paid period."""
    return await _respond(
        "cancel_subscription",
        lambda: services.subscriptions.cancel_subscription(user_id),
    )


@router.post("/reactivate-subscription")
async def reactivate_subscription(
    user_id: str = Depends(require_auth),
    services: Services = Depends(get_services),
):
    return await _respond(
        "reactivate_subscription",
        lambda: services.subscriptions.reactivate_subscription(user_id),
    )
