from __future__ import annotations

from abc import ABC, abstractmethod

from notifier.adapters.payload.base import Payload

NOTIFICATION_HEADER = "😂 *Joke time!*"


def render_notification(payload: Payload) -> str:
    return f"{NOTIFICATION_HEADER}\n\n{payload.text}"


class AbstractDeliveryChannel(ABC):
    """Interface for channels that push messages to a subscriber."""

    @abstractmethod
    async def send_text(self, key: str, text: str, *, markdown: bool = False) -> bool:
        """Send a plain message to subscriber ``key``.

        Returns:
            bool: True when the channel accepted the message, False when it
            answered with a rejection (unknown chat, blocked bot, ...).

        Raises:
            UpstreamUnavailable: If the channel could not be reached.
        """
        ...

    async def deliver(self, key: str, payload: Payload) -> bool:
        """Send a scheduled notification built from ``payload``."""
        return await self.send_text(key, render_notification(payload), markdown=True)

    async def aclose(self) -> None:
        return None
