"""Delivery handler registered with the job runner.

One invocation = one notification for one subscriber:
1. check the subscriber is still present and enabled
2. fetch a payload from the payload source
3. push it through the delivery channel
4. stamp the subscriber's last delivery time

The handler captures the delivery channel at construction, so the bot
command layer and the scheduler never need a reference to each other.
"""

from __future__ import annotations

import asyncio
import logging

from notifier.adapters.delivery.base import AbstractDeliveryChannel
from notifier.adapters.payload.base import AbstractPayloadSource
from notifier.core.errors import NotFoundError, UpstreamUnavailable
from notifier.scheduler.models import HandlerResult, JobRecord
from notifier.services.subscriber_service import SubscriberService

logger = logging.getLogger(__name__)


class NotificationDeliveryHandler:
    """Async callable ``(JobRecord) -> HandlerResult``."""

    def __init__(
        self,
        directory: SubscriberService,
        payload_source: AbstractPayloadSource,
        channel: AbstractDeliveryChannel,
    ) -> None:
        self.directory = directory
        self.payload_source = payload_source
        self.channel = channel

    async def __call__(self, record: JobRecord) -> HandlerResult:
        key = record.key

        active = await asyncio.to_thread(self.directory.is_active, key)
        if not active:
            logger.info("delivery.subscriber_gone", extra={"job_key": key})
            return HandlerResult.SUBSCRIBER_GONE

        try:
            payload = await self.payload_source.fetch_payload()
            delivered = await self.channel.deliver(key, payload)
        except UpstreamUnavailable as exc:
            logger.warning(
                "delivery.upstream_unavailable",
                extra={"job_key": key, "error_code": exc.code},
            )
            return HandlerResult.FAILED

        if not delivered:
            return HandlerResult.FAILED

        try:
            await asyncio.to_thread(self.directory.mark_delivered, key)
        except NotFoundError:
            # Deleted between the check and the send; the message still went out.
            logger.info("delivery.subscriber_deleted_during_send", extra={"job_key": key})

        logger.info("delivery.sent", extra={"job_key": key, "source": payload.source})
        return HandlerResult.DELIVERED
