"""Invitation token generation."""

import secrets
from datetime import datetime, timedelta


def generate_invite_token() -> str:
    """Unguessable, url-safe token (256 bits of entropy)."""
    return secrets.token_urlsafe(32)


def invite_expiry(now: datetime, days: int = 7) -> datetime:
    return now + timedelta(days=days)
