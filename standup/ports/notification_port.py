"""Notification port: abstract interface for sending messages.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_message(self, chat_id: int | str, text: str) -> str | None:
        """Send ``text`` to a user (DM) or a channel.

        Returns the platform message id, or None when the platform accepted
        the call without returning one. Raises on delivery failure.
        """
        ...
