"""Declarative base and helpers shared by all entitlement-store models."""

import secrets
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def generate_id() -> str:
    """Generate a 20-character url-safe document id."""
    return secrets.token_urlsafe(15)


def utcnow() -> datetime:
    """Naive UTC now; the store keeps every timestamp in naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
