from __future__ import annotations

import logging

from notifier.adapters.delivery.base import AbstractDeliveryChannel

logger = logging.getLogger(__name__)


class LoggingDeliveryChannel(AbstractDeliveryChannel):
    """Channel used when no bot token is configured: messages only go to the log.

    Sent messages are kept in ``sent`` so local runs and tests can inspect them.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, key: str, text: str, *, markdown: bool = False) -> bool:
        self.sent.append((str(key), text))
        logger.info(
            "delivery.logged",
            extra={"job_key": str(key), "chars": len(text), "markdown": markdown},
        )
        return True
