from __future__ import annotations

import asyncio
import hashlib
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import urlencode

from .constants import DEFAULT_DEDUP_WINDOW_SECONDS, LOGGER

T = TypeVar("T")


def build_dedup_key(
    method: str,
    url: str,
    params: Mapping[str, Any] | None = None,
    authorization: str | None = None,
) -> str:
    key = f"{method.upper()}:{url}"
    if params:
        key = f"{key}?{urlencode(sorted(params.items()), doseq=True)}"
    # Requests carrying different credentials never share a response.
    if authorization:
        digest = hashlib.sha256(authorization.encode("utf-8")).hexdigest()[:16]
        return f"{key}#{digest}"
    return f"{key}#anonymous"


@dataclass
class PendingEntry:
    key: str
    task: asyncio.Future
    started_at: float


class RequestCoalescer:
    """Deduplicate identical in-flight requests.

    A caller may attach to an existing entry only while the entry is younger
    than the window. Once attached, it waits for the shared operation however
    long it takes. Entries are dropped as soon as their operation settles.
    """

    def __init__(
        self,
        *,
        window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._pending: dict[str, PendingEntry] = {}

    def __len__(self) -> int:
        return len(self._pending)

    async def dedupe(self, key: str, op: Callable[[], Awaitable[T]]) -> T:
        now = self._clock()
        entry = self._pending.get(key)
        if entry is not None and not entry.task.done() and now - entry.started_at < self._window:
            LOGGER.debug("Coalesced request %s", key)
            return await asyncio.shield(entry.task)

        task = asyncio.ensure_future(op())
        entry = PendingEntry(key=key, task=task, started_at=now)
        self._pending[key] = entry
        task.add_done_callback(lambda _: self._discard(entry))
        return await asyncio.shield(task)

    def _discard(self, entry: PendingEntry) -> None:
        if self._pending.get(entry.key) is entry:
            del self._pending[entry.key]
        if not entry.task.cancelled():
            # Mark the outcome as retrieved even if every waiter went away.
            entry.task.exception()
