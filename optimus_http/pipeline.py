from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from auth.refresh import RefreshCoordinator
from auth.token_store import DEFAULT_SKEW_SECONDS, CredentialStore

from .coalescing import RequestCoalescer, build_dedup_key
from .constants import LOGGER, SAFE_METHODS
from .errors import ErrorNormalizer, Failure, Result
from .transport import Transport, TransportResponse


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    url: str
    params: Mapping[str, Any] | None = None
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    skip_auth: bool = False
    skip_dedup: bool = False
    is_retry: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    @property
    def dedupable(self) -> bool:
        return not self.skip_dedup and self.method in SAFE_METHODS

    def dedup_key(self, authorization: str | None = None) -> str:
        return build_dedup_key(self.method, self.url, self.params, authorization)

    def as_retry(self) -> "RequestDescriptor":
        if self.is_retry:
            raise RuntimeError("Request descriptor has already been retried.")
        return dataclasses.replace(self, is_retry=True)


def _authorization_value(headers: Mapping[str, str]) -> str | None:
    for name, value in headers.items():
        if name.lower() == "authorization":
            return value
    return None


class RequestPipeline:
    """Runs one outbound call through auth, coalescing and error mapping.

    A 401 triggers at most one coordinated refresh and one retry for a given
    descriptor. Anything else goes straight to the normalizer.
    """

    def __init__(
        self,
        *,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
        coalescer: RequestCoalescer,
        transport: Transport,
        normalizer: ErrorNormalizer | None = None,
        skew_seconds: int = DEFAULT_SKEW_SECONDS,
        on_session_expired: Callable[[Failure], None] | None = None,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._coalescer = coalescer
        self._transport = transport
        self._normalizer = normalizer or ErrorNormalizer()
        self._skew_seconds = skew_seconds
        self._on_session_expired = on_session_expired

    async def execute(self, descriptor: RequestDescriptor) -> Result:
        if not descriptor.skip_auth and self._store.is_near_expiry(self._skew_seconds):
            LOGGER.info("Credentials near expiry; refreshing before %s %s", descriptor.method, descriptor.url)
            await self._coordinator.ensure_fresh()
        return await self._send(descriptor)

    async def _send(self, descriptor: RequestDescriptor) -> Result:
        headers, token = self._authorize(descriptor)
        try:
            response = await self._dispatch(descriptor, headers)
        except httpx.HTTPError as error:
            return self._normalizer.from_exception(error)

        if response.status_code != 401 or descriptor.skip_auth:
            return self._normalizer.from_response(response)

        if descriptor.is_retry:
            LOGGER.warning("Retried request still unauthorized: %s %s", descriptor.method, descriptor.url)
            self._store.clear()
            return self._session_expired(response)

        if await self._coordinator.ensure_fresh(stale_token=token):
            return await self._send(descriptor.as_retry())
        return self._session_expired(response)

    def _authorize(self, descriptor: RequestDescriptor) -> tuple[dict[str, str], str | None]:
        headers = dict(descriptor.headers)
        if descriptor.skip_auth or _authorization_value(headers) is not None:
            return headers, None
        token = self._store.access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers, token

    async def _dispatch(
        self, descriptor: RequestDescriptor, headers: dict[str, str]
    ) -> TransportResponse:
        def send() -> Any:
            return self._transport.send(
                descriptor.method,
                descriptor.url,
                headers=headers,
                params=descriptor.params,
                body=descriptor.body,
            )

        if descriptor.dedupable:
            return await self._coalescer.dedupe(
                descriptor.dedup_key(_authorization_value(headers)), send
            )
        return await send()

    def _session_expired(self, response: TransportResponse) -> Failure:
        failure = self._normalizer.auth_expired(response)
        if self._on_session_expired is not None:
            self._on_session_expired(failure)
        return failure
