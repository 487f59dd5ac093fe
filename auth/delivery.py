"""
auth/delivery.py -- Where raw password reset tokens go after they are issued.

The service never returns a reset token to the HTTP caller (that would let
anyone reset anyone's password). It hands the raw token to a ResetDelivery
backend instead. Swap the backend in api/main.py lifespan.

  LogResetDelivery -- default. Records that a reset was issued, never the token.
  MemoryOutbox     -- keeps the latest token per email. Tests and the admin debug endpoint.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import User

logger = logging.getLogger("vrccms.auth.delivery")


class ResetDelivery(Protocol):
    def deliver(self, user: User, raw_token: str, expires_at: str) -> None: ...


class LogResetDelivery:
    """Log-only delivery. Wire up an email sender by implementing ResetDelivery."""

    def deliver(self, user: User, raw_token: str, expires_at: str) -> None:
        logger.info("Password reset issued for user_id=%s (expires %s)", user.id, expires_at)


class MemoryOutbox:
    """Keeps the latest delivered token per lower-cased email."""

    def __init__(self) -> None:
        self.messages: dict[str, dict] = {}

    def deliver(self, user: User, raw_token: str, expires_at: str) -> None:
        self.messages[user.email.lower()] = {
            "user_id": user.id,
            "token": raw_token,
            "expires_at": expires_at,
        }
        logger.debug("Reset token queued in memory outbox for user_id=%s", user.id)

    def latest_for(self, email: str) -> str | None:
        """Return the most recently delivered raw token for email, or None."""
        message = self.messages.get(email.lower())
        return message["token"] if message is not None else None

    def clear(self) -> None:
        self.messages.clear()
