from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional

DEFAULT_TTL_SECONDS = 300.0


def event_identifier(payload: Mapping[str, Any]) -> Optional[str]:
    """Dedup key for an event callback: event_id, then client_msg_id, then ts."""
    event = payload.get("event") or {}
    return (
        payload.get("event_id")
        or event.get("client_msg_id")
        or event.get("ts")
        or event.get("event_ts")
    )


class EventDeduplicator(ABC):
    @abstractmethod
    async def check_and_mark(self, event_id: str) -> bool:
        """Remember ``event_id``; True when it was already seen inside the window."""


class InMemoryEventDeduplicator(EventDeduplicator):
    """Process-local seen-set with per-id expiry.

    Best effort only: separate instances do not share it and a restart empties
    it. Handlers stay safe under duplicates through log status checks.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._expires_at: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._expires_at)

    def _evict(self, now: float) -> None:
        expired = [k for k, exp in self._expires_at.items() if exp <= now]
        for k in expired:
            del self._expires_at[k]

    async def check_and_mark(self, event_id: str) -> bool:
        now = self._clock()
        self._evict(now)
        if event_id in self._expires_at:
            return True
        self._expires_at[event_id] = now + self.ttl_seconds
        return False
