"""Caller identity and the User entity carrying the subscription mirror."""

from teamhub.auth.models import UserAccount

__all__ = ["UserAccount"]
