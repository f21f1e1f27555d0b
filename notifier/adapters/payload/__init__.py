"""Payload sources - where notification content comes from."""

from notifier.adapters.payload.base import AbstractPayloadSource, Payload
from notifier.adapters.payload.joke_api import JokeApiPayloadSource

__all__ = [
    "AbstractPayloadSource",
    "JokeApiPayloadSource",
    "Payload",
]
