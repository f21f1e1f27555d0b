"""Service container: builds and owns every long-lived component.

Built once per application (``ServiceContainer.build``), attached to
``app.state.container`` and torn down in the app lifespan. Tests build their
own container around in-memory stores and fake adapters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from notifier.adapters.delivery import AbstractDeliveryChannel, LoggingDeliveryChannel, TelegramDeliveryChannel
from notifier.adapters.payload import AbstractPayloadSource, JokeApiPayloadSource
from notifier.adapters.rate_limit import DEFAULT_POLICIES, RateLimiterRegistry
from notifier.core.config import Settings
from notifier.core.db import build_engine, build_sessionmaker, init_db
from notifier.scheduler.facade import SchedulerFacade
from notifier.scheduler.models import DEFAULT_HANDLER_NAME
from notifier.scheduler.runner import JobRunner
from notifier.scheduler.store import AbstractJobStore, SqlAlchemyJobStore
from notifier.services.command_service import CommandService
from notifier.services.delivery_service import NotificationDeliveryHandler
from notifier.services.subscriber_service import SubscriberService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    rate_limiters: RateLimiterRegistry
    job_store: AbstractJobStore
    runner: JobRunner
    scheduler: SchedulerFacade
    subscribers: SubscriberService
    payload_source: AbstractPayloadSource
    channel: AbstractDeliveryChannel
    commands: CommandService
    engine: Optional[Engine] = None
    started: bool = field(default=False, init=False)

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        payload_source: AbstractPayloadSource | None = None,
        channel: AbstractDeliveryChannel | None = None,
        job_store: AbstractJobStore | None = None,
    ) -> "ServiceContainer":
        """Wire the production object graph from ``settings``.

        Adapters and the job store can be injected; everything else is
        derived from configuration.
        """
        engine = build_engine(settings.database.url, echo=settings.database.echo)
        sessions = build_sessionmaker(engine)

        rate_limiters = RateLimiterRegistry.from_policies(
            DEFAULT_POLICIES,
            sweep_interval_seconds=settings.app.rate_limit_sweep_seconds or None,
        )

        if payload_source is None:
            payload_source = JokeApiPayloadSource(
                base_url=settings.joke_api.base_url,
                timeout_seconds=settings.joke_api.timeout_seconds,
            )
        if channel is None:
            if settings.telegram.bot_token:
                channel = TelegramDeliveryChannel(
                    bot_token=settings.telegram.bot_token,
                    api_base_url=settings.telegram.api_base_url,
                    timeout_seconds=settings.telegram.timeout_seconds,
                )
            else:
                logger.warning("container.no_bot_token", extra={"channel": "logging"})
                channel = LoggingDeliveryChannel()

        store = job_store or SqlAlchemyJobStore(sessions)
        subscribers = SubscriberService(sessions)

        runner = JobRunner(
            store,
            poll_interval_seconds=settings.scheduler.poll_interval_seconds,
            max_concurrency=settings.scheduler.max_concurrency,
            handler_timeout_seconds=settings.scheduler.handler_timeout_seconds,
            lock_lease_seconds=settings.scheduler.lock_lease_seconds,
            batch_size=settings.scheduler.batch_size,
        )
        runner.register(
            DEFAULT_HANDLER_NAME,
            NotificationDeliveryHandler(subscribers, payload_source, channel),
        )
        scheduler = SchedulerFacade(store, runner, handler_name=DEFAULT_HANDLER_NAME)

        commands = CommandService(
            subscribers,
            scheduler,
            channel,
            rate_limiters,
            rate_limit_enabled=settings.app.rate_limit_enabled,
        )

        return cls(
            settings=settings,
            rate_limiters=rate_limiters,
            job_store=store,
            runner=runner,
            scheduler=scheduler,
            subscribers=subscribers,
            payload_source=payload_source,
            channel=channel,
            commands=commands,
            engine=engine,
        )

    async def startup(self) -> None:
        """Create tables, restore missing schedules and start the runner."""
        if self.engine is not None:
            init_db(self.engine)

        if self.settings.scheduler.restore_on_startup:
            await self.scheduler.restore(self.subscribers)

        if self.settings.scheduler.enabled:
            await self.runner.start()

        self.started = True
        logger.info(
            "container.started",
            extra={
                "runner_enabled": self.settings.scheduler.enabled,
                "limiters": len(self.rate_limiters),
            },
        )

    async def shutdown(self) -> None:
        """Stop the runner, drop limiter state and close network clients."""
        await self.runner.stop()
        self.rate_limiters.destroy_all()
        await self.payload_source.aclose()
        await self.channel.aclose()
        if self.engine is not None:
            self.engine.dispose()
        self.started = False
        logger.info("container.stopped")


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container attached to the app."""
    return request.app.state.container
