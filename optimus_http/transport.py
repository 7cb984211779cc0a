from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from .constants import DEFAULT_TIMEOUT_SECONDS, LOGGER
from .monitor import RequestMonitor


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict, compare=False)


class Transport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> TransportResponse:
        """Send one request; raise ``httpx.HTTPError`` when no response arrives."""


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    return response.text


async def log_error_body(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    body = await response.aread()
    text = body.decode("utf-8", errors="replace")
    if len(text) > 1000:
        text = text[:1000] + "...<truncated>"
    LOGGER.warning(
        "API error %s %s -> %s body: %s",
        response.request.method,
        response.request.url,
        response.status_code,
        text,
    )


class HttpxTransport:
    """Transport over an ``httpx.AsyncClient`` with a fixed per-call timeout."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        monitor: RequestMonitor | None = None,
        event_hooks: dict | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            event_hooks=event_hooks or {},
        )
        self._timeout = timeout
        self._monitor = monitor

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> TransportResponse:
        request_id = self._monitor.start(method, url) if self._monitor else ""
        try:
            response = await self._client.request(
                method,
                url,
                headers=dict(headers),
                params=params,
                json=body,
                timeout=self._timeout,
            )
        except httpx.HTTPError as error:
            if self._monitor:
                self._monitor.fail(request_id, str(error) or type(error).__name__)
            raise

        if self._monitor:
            self._monitor.finish(request_id, response.status_code)
        return TransportResponse(
            status_code=response.status_code,
            body=_decode_body(response),
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
