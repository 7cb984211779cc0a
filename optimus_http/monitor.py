from __future__ import annotations

import itertools
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from .constants import DEFAULT_MONITOR_CAPACITY, LOGGER


@dataclass
class RequestLog:
    id: str
    method: str
    url: str
    started_at: float
    status: int | None = None
    duration_ms: float | None = None
    error: str | None = None


@dataclass
class DuplicateGroup:
    key: str
    count: int
    requests: list[RequestLog]


class RequestMonitor:
    """Keeps a bounded history of outbound requests for debugging.

    Useful for spotting reads that escaped coalescing: ``duplicate_requests``
    groups recent entries by ``METHOD:url``.
    """

    def __init__(
        self,
        *,
        capacity: int = DEFAULT_MONITOR_CAPACITY,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._logs: deque[RequestLog] = deque(maxlen=capacity)
        self._ids = itertools.count(1)
        self._clock = clock
        self.enabled = enabled

    def start(self, method: str, url: str) -> str:
        if not self.enabled:
            return ""
        log = RequestLog(
            id=f"req_{next(self._ids)}",
            method=method.upper(),
            url=url,
            started_at=self._clock(),
        )
        self._logs.append(log)
        LOGGER.info("[%s] %s %s", log.id, log.method, log.url)
        return log.id

    def finish(self, request_id: str, status: int) -> None:
        log = self._find(request_id)
        if log is None:
            return
        log.status = status
        log.duration_ms = (self._clock() - log.started_at) * 1000
        LOGGER.info("[%s] %s %.0fms", log.id, status, log.duration_ms)

    def fail(self, request_id: str, error: str) -> None:
        log = self._find(request_id)
        if log is None:
            return
        log.error = error
        log.duration_ms = (self._clock() - log.started_at) * 1000
        LOGGER.warning("[%s] error: %s (%.0fms)", log.id, error, log.duration_ms)

    def recent(self, count: int = 10) -> list[RequestLog]:
        return list(self._logs)[-count:]

    def duplicate_requests(self, window_seconds: float = 5.0) -> list[DuplicateGroup]:
        now = self._clock()
        groups: dict[str, list[RequestLog]] = {}
        for log in self._logs:
            if now - log.started_at >= window_seconds:
                continue
            groups.setdefault(f"{log.method}:{log.url}", []).append(log)

        duplicates = [
            DuplicateGroup(key=key, count=len(logs), requests=logs)
            for key, logs in groups.items()
            if len(logs) > 1
        ]
        duplicates.sort(key=lambda group: group.count, reverse=True)
        return duplicates

    def clear(self) -> None:
        self._logs.clear()

    def log_stats(self) -> None:
        if not self.enabled:
            return
        LOGGER.info("Request monitor: %s requests recorded", len(self._logs))
        duplicates = self.duplicate_requests()
        if not duplicates:
            LOGGER.info("Request monitor: no duplicate requests")
            return
        for group in duplicates:
            LOGGER.warning("Duplicate request %s x%s", group.key, group.count)

    def _find(self, request_id: str) -> RequestLog | None:
        if not self.enabled or not request_id:
            return None
        for log in reversed(self._logs):
            if log.id == request_id:
                return log
        return None
