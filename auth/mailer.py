"""
auth/mailer.py -- Outbound email seam for password-reset links.

Delivery is an external collaborator. PasswordResetService only needs
something with send_reset(); LogMailer is the default so a fresh install
works without SMTP settings. The raw reset URL is logged at DEBUG only.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import User

logger = logging.getLogger("adminauth.mailer")


class Mailer(Protocol):
    def send_reset(self, user: User, reset_url: str) -> None: ...


class LogMailer:
    def send_reset(self, user: User, reset_url: str) -> None:
        logger.info("Password reset email queued for user id=%s", user.id)
        logger.debug("Reset link for user id=%s: %s", user.id, reset_url)
