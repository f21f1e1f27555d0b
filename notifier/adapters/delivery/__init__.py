"""Delivery channels - how notifications reach subscribers."""

from notifier.adapters.delivery.base import AbstractDeliveryChannel, render_notification
from notifier.adapters.delivery.logging_channel import LoggingDeliveryChannel
from notifier.adapters.delivery.telegram import TelegramDeliveryChannel

__all__ = [
    "AbstractDeliveryChannel",
    "LoggingDeliveryChannel",
    "TelegramDeliveryChannel",
    "render_notification",
]
