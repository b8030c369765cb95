"""Transactional email delivery."""

from teamhub.email.service import EmailService

__all__ = ["EmailService"]
