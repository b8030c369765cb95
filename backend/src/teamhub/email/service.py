"""Email service for TeamHub using SendGrid."""

from html import escape
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from teamhub.logging_config import get_logger
from teamhub.settings import Settings

logger = get_logger(__name__)


class EmailService:
    """Email service using SendGrid API.

    Handles the team invitation emails:
    - Invitation
    - Invitation reminder (resend)
    """

    SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        """Initialize email service."""
        self.api_key = settings.sendgrid_api_key
        self.from_email = settings.sendgrid_from_email
        self.from_name = settings.sendgrid_from_name
        self.base_url = settings.app_base_url.rstrip("/")
        self.enabled = bool(self.api_key)
        self._http_client = http_client

        if not self.enabled:
            logger.warning("email_service_disabled", reason="SENDGRID_API_KEY not set")

    def invite_link(self, token: str) -> str:
        """Deep link that opens the invitation page for this token."""
        return f"{self.base_url}/invite/{token}"

    async def _send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> bool:
        """Send an email via SendGrid API.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body (optional)

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.warning("email_not_sent", reason="service_disabled", to=to_email)
            return False

        payload = {
            "personalizations": [
                {
                    "to": [{"email": to_email}],
                    "subject": subject,
                }
            ],
            "from": {
                "email": self.from_email,
                "name": self.from_name,
            },
            "content": [
                {"type": "text/html", "value": html_content},
            ],
        }

        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._post(payload, headers)

            if response.status_code in (200, 201, 202):
                logger.info("email_sent", to=to_email, subject=subject)
                return True

            logger.error(
                "email_send_failed",
                to=to_email,
                status=response.status_code,
                body=response.text[:200],
            )
            return False

        except httpx.RequestError as e:
            logger.error("email_send_error", to=to_email, error=str(e))
            return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(self, payload: dict, headers: dict[str, str]) -> httpx.Response:
        """POST to SendGrid, retrying transport failures."""
        if self._http_client is not None:
            return await self._http_client.post(
                self.SENDGRID_API_URL, json=payload, headers=headers, timeout=30.0
            )
        async with httpx.AsyncClient() as client:
            return await client.post(
                self.SENDGRID_API_URL,
                json=payload,
                headers=headers,
                timeout=30.0,
            )

    async def send_team_invite_email(
        self,
        to_email: str,
        team_name: str,
        inviter_name: str,
        invite_token: str,
        expiry_days: int,
        reminder: bool = False,
    ) -> bool:
        """Send a team invitation (or a reminder of one).

        Args:
            to_email: Invitee's email address
            team_name: Name of the inviting team
            inviter_name: Display name of the team owner
            invite_token: Token embedded in the deep link
            expiry_days: Days until the invitation expires
            reminder: Word the email as a reminder

        Returns:
            True if sent successfully
        """
        invite_url = self.invite_link(invite_token)

        if reminder:
            subject = f'Reminder: join "{team_name}" on TeamHub'
        else:
            subject = f'Join "{team_name}" on TeamHub'

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <style>
                body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .button {{ display: inline-block; background-color: #2563eb; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; margin: 20px 0; }}
                .footer {{ margin-top: 40px; padding-top: 20px; border-top: 1px solid #eee; font-size: 12px; color: #666; }}
            </style>
        </head>
        <body>
            <div class="container">
                <p>Hi!</p>

                <p><strong>{escape(inviter_name)}</strong> invited you to join the team
                "<strong>{escape(team_name)}</strong>" on TeamHub.</p>

                <p>As a team member you get <strong>full access</strong> to all subscription
                content, at no extra cost.</p>

                <p style="text-align: center;">
                    <a href="{invite_url}" class="button">Accept invitation</a>
                </p>

                <p>This invitation is valid for <strong>{expiry_days} days</strong>.</p>

                <p>If the button does not work, copy this link into your browser:</p>
                <p style="word-break: break-all; color: #666;">{invite_url}</p>

                <div class="footer">
                    <p>If you were not expecting this invitation, you can ignore this email.</p>
                </div>
            </div>
        </body>
        </html>
        """

        text_content = f"""
Hi!

{inviter_name} invited you to join the team "{team_name}" on TeamHub.

As a team member you get full access to all subscription content, at no extra cost.

Accept the invitation here:
{invite_url}

This invitation is valid for {expiry_days} days.

---
TeamHub
        """

        return await self._send_email(to_email, subject, html_content, text_content)
