"""Bot command layer.

Turns an incoming chat message into subscriber/scheduler operations and
replies through the delivery channel.

Commands work with or without a leading ``/`` and are case-insensitive
(``ENABLE``, ``enable`` and ``/enable`` are the same command). Every
command is rate limited per chat by its ``telegram:<command>`` limiter, or
by the generic ``telegram:command`` limiter when no specific one exists.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from notifier.adapters.delivery.base import AbstractDeliveryChannel
from notifier.adapters.rate_limit.policies import TELEGRAM_COMMAND
from notifier.adapters.rate_limit.registry import RateLimiterRegistry
from notifier.core.errors import AppError, InvalidIntervalError, NotFoundError, UpstreamUnavailable
from notifier.scheduler.facade import SchedulerFacade
from notifier.scheduler.models import MAX_INTERVAL_MINUTES, MIN_INTERVAL_MINUTES, HandlerResult
from notifier.services.subscriber_service import SubscriberService

logger = logging.getLogger(__name__)

KNOWN_COMMANDS = ("start", "enable", "disable", "frequency", "status", "help", "test", "jobstatus")

# jobstatus shares the status budget
_LIMITER_ALIASES = {"jobstatus": "status"}

_COMMAND_RE = re.compile(r"^/?(?P<name>[a-z]+)(?:@\w+)?(?:\s+(?P<args>.*))?$", re.IGNORECASE | re.DOTALL)

HELP_TEXT = (
    "📋 Available Commands:\n\n"
    "/start - Start the bot\n"
    "/enable - Resume joke delivery\n"
    "/disable - Pause joke delivery\n"
    f"/frequency <n> - Set frequency ({MIN_INTERVAL_MINUTES}-{MAX_INTERVAL_MINUTES} minutes)\n"
    "/status - Check your settings\n"
    "/test - Get a joke NOW (for testing)\n"
    "/jobstatus - Check your delivery job\n"
    "/help - Show this message\n\n"
    "💡 Commands work with or without / and are case-insensitive.\n"
    "Example: 'ENABLE', 'enable', '/enable' all work the same."
)
WELCOME_TEXT = (
    "Welcome to Joke Bot! 🎉\n\n"
    "I'll send you jokes at regular intervals.\n\n"
    "Use /help to see available commands."
)
NOT_FOUND_TEXT = "❌ User not found. Use /start to begin."
INVALID_FREQUENCY_TEXT = (
    f"❌ Frequency must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes."
)
FREQUENCY_USAGE_TEXT = "❌ Invalid format. Use: /frequency <minutes>\n\nExample: /frequency 5"
ERROR_TEXT = "❌ Something went wrong. Please try again."


@dataclass(frozen=True)
class ParsedCommand:
    name: str
    args: str = ""


def parse_command(text: str) -> Optional[ParsedCommand]:
    """Parse ``text`` into a command, or None for free text.

    Unknown words are only treated as commands when prefixed with ``/``.
    """
    stripped = (text or "").strip()
    match = _COMMAND_RE.match(stripped)
    if match is None:
        return None
    name = match.group("name").lower()
    args = (match.group("args") or "").strip()
    if not stripped.startswith("/"):
        if name not in KNOWN_COMMANDS:
            return None
        # "status please" is chatter, "frequency 5" is a command
        if args and name != "frequency":
            return None
    return ParsedCommand(name=name, args=args)


def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return "Never"
    return value.strftime("%Y-%m-%d %H:%M UTC")


class CommandService:
    """Handles one chat message at a time and sends the replies."""

    def __init__(
        self,
        subscribers: SubscriberService,
        scheduler: SchedulerFacade,
        channel: AbstractDeliveryChannel,
        rate_limiters: RateLimiterRegistry,
        *,
        rate_limit_enabled: bool = True,
    ) -> None:
        self.subscribers = subscribers
        self.scheduler = scheduler
        self.channel = channel
        self.rate_limiters = rate_limiters
        self.rate_limit_enabled = rate_limit_enabled

        self._handlers: dict[str, Callable[[str, ParsedCommand], Awaitable[list[str]]]] = {
            "start": self._start,
            "enable": self._enable,
            "disable": self._disable,
            "frequency": self._frequency,
            "status": self._status,
            "help": self._help,
            "test": self._test,
            "jobstatus": self._jobstatus,
        }

    async def handle_message(self, key: str, text: str) -> list[str]:
        """Process one message from chat ``key``; returns the replies sent."""
        key = str(key)
        command = parse_command(text)

        limiter_name = TELEGRAM_COMMAND
        if command is not None and command.name in self._handlers:
            limiter_name = f"telegram:{_LIMITER_ALIASES.get(command.name, command.name)}"

        retry_after = self._check_rate_limit(limiter_name, key)
        if retry_after is not None:
            return await self._send(
                key,
                f"⚠️ You're sending commands too quickly. "
                f"Please wait {retry_after} seconds before trying again.",
            )

        if command is None:
            return await self._send(key, f"🤔 I didn't understand that message.\n\n{HELP_TEXT}")

        handler = self._handlers.get(command.name)
        if handler is None:
            return await self._send(key, f"❌ Unknown command: /{command.name}\n\n{HELP_TEXT}")

        logger.info("command.received", extra={"command": command.name, "job_key": key})
        try:
            return await handler(key, command)
        except AppError as exc:
            logger.warning(
                "command.failed",
                extra={"command": command.name, "job_key": key, "error_code": exc.code},
            )
        except Exception:
            logger.exception("command.crashed", extra={"command": command.name, "job_key": key})
        return await self._send(key, ERROR_TEXT)

    def _check_rate_limit(self, name: str, key: str) -> Optional[int]:
        """Return the retry delay in seconds when rejected, None when allowed."""
        if not self.rate_limit_enabled:
            return None
        if not self.rate_limiters.has(name):
            name = TELEGRAM_COMMAND
        result = self.rate_limiters.get(name).check({"identifier": key})
        if result.allowed:
            return None
        return result.retry_after_seconds or 5

    async def _send(self, key: str, *texts: str) -> list[str]:
        sent: list[str] = []
        for text in texts:
            try:
                await self.channel.send_text(key, text)
            except UpstreamUnavailable:
                logger.warning("command.reply_failed", extra={"job_key": key})
                continue
            sent.append(text)
        return sent

    async def _start(self, key: str, command: ParsedCommand) -> list[str]:
        subscriber = await asyncio.to_thread(self.subscribers.find_or_create, key)
        if subscriber.enabled and await self.scheduler.find(key) is None:
            await self.scheduler.schedule(key, subscriber.interval_minutes)
        return await self._send(key, WELCOME_TEXT)

    async def _enable(self, key: str, command: ParsedCommand) -> list[str]:
        subscriber = await asyncio.to_thread(self.subscribers.get, key)
        if subscriber is None:
            return await self._send(key, NOT_FOUND_TEXT)

        if subscriber.enabled:
            if await self.scheduler.find(key) is None:
                await self.scheduler.schedule(key, subscriber.interval_minutes)
            return await self._send(
                key,
                f"✅ Jokes are already enabled! You are receiving jokes every "
                f"{subscriber.interval_minutes} minute(s).",
            )

        subscriber = await asyncio.to_thread(self.subscribers.enable, key)
        await self.scheduler.schedule(key, subscriber.interval_minutes)
        return await self._send(
            key,
            f"✅ Joke delivery enabled! You will now receive jokes every "
            f"{subscriber.interval_minutes} minute(s).",
        )

    async def _disable(self, key: str, command: ParsedCommand) -> list[str]:
        subscriber = await asyncio.to_thread(self.subscribers.get, key)
        if subscriber is None:
            return await self._send(key, NOT_FOUND_TEXT)

        if not subscriber.enabled:
            return await self._send(key, "⏸️ Jokes are already disabled! Use /enable to resume joke delivery.")

        await asyncio.to_thread(self.subscribers.disable, key)
        await self.scheduler.cancel(key)
        return await self._send(key, "⏸️ Joke delivery paused. Use /enable to resume.")

    async def _frequency(self, key: str, command: ParsedCommand) -> list[str]:
        if not command.args.isdigit():
            return await self._send(key, FREQUENCY_USAGE_TEXT)

        try:
            subscriber = await asyncio.to_thread(self.subscribers.set_interval, key, int(command.args))
        except InvalidIntervalError:
            return await self._send(key, INVALID_FREQUENCY_TEXT)
        except NotFoundError:
            return await self._send(key, NOT_FOUND_TEXT)

        if subscriber.enabled:
            await self.scheduler.schedule(key, subscriber.interval_minutes)
            return await self._send(
                key,
                f"✅ Frequency updated! You will receive jokes every "
                f"{subscriber.interval_minutes} minute(s).",
            )
        return await self._send(
            key,
            f"✅ Frequency updated to {subscriber.interval_minutes} minute(s). "
            f"Use /enable to resume joke delivery.",
        )

    async def _status(self, key: str, command: ParsedCommand) -> list[str]:
        subscriber = await asyncio.to_thread(self.subscribers.get, key)
        if subscriber is None:
            return await self._send(key, NOT_FOUND_TEXT)

        state = "✅ Enabled" if subscriber.enabled else "⏸️ Disabled"
        return await self._send(
            key,
            f"📊 Your Status:\n\n"
            f"Jokes: {state}\n"
            f"Frequency: Every {subscriber.interval_minutes} minute(s)\n"
            f"Last Joke: {_format_time(subscriber.last_sent)}",
        )

    async def _help(self, key: str, command: ParsedCommand) -> list[str]:
        return await self._send(key, HELP_TEXT)

    async def _test(self, key: str, command: ParsedCommand) -> list[str]:
        sent = await self._send(key, "🧪 Testing joke delivery... please wait...")
        result = await self.scheduler.run_now(key)
        if result is HandlerResult.SUBSCRIBER_GONE:
            sent += await self._send(key, "⏸️ Jokes are disabled. Use /start or /enable first.")
        elif result is HandlerResult.FAILED:
            sent += await self._send(key, "❌ Test failed. Please try again later.")
        return sent

    async def _jobstatus(self, key: str, command: ParsedCommand) -> list[str]:
        record = await self.scheduler.find(key)
        total = await self.scheduler.active_count()
        if record is None:
            return await self._send(
                key,
                f"📊 Job Status:\n\nNo delivery scheduled for this chat.\nActive schedules: {total}",
            )
        return await self._send(
            key,
            f"📊 Job Status:\n\n"
            f"Every {record.interval_minutes} minute(s)\n"
            f"Next run: {_format_time(record.next_run_at)}\n"
            f"Last run: {_format_time(record.last_run_at)}\n"
            f"Consecutive failures: {record.fail_count}\n"
            f"Active schedules: {total}",
        )
