from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Payload:
    """Content delivered to a subscriber on each run."""

    text: str
    source: str = "unknown"
    meta: dict[str, Any] = field(default_factory=dict)


class AbstractPayloadSource(ABC):
    """Interface for upstreams that produce one notification payload per call."""

    @abstractmethod
    async def fetch_payload(self) -> Payload:
        """Fetch a fresh payload.

        Returns:
            Payload: Text ready to be delivered.

        Raises:
            UpstreamUnavailable: If the upstream call fails or returns an unusable body.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""
        return None
