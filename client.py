from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from auth.models import RefreshGrant
from auth.refresh import RefreshCoordinator, request_refresh
from auth.token_store import (
    CredentialBackend,
    CredentialStore,
    FileCredentialBackend,
    MemoryCredentialBackend,
)
from optimus_http.coalescing import RequestCoalescer
from optimus_http.constants import APP_VERSION, HTTP_METHODS, LOGGER
from optimus_http.env import Settings, load_env, load_settings, setup_logging, validate_env
from optimus_http.errors import (
    AuthExpiredError,
    ErrorKind,
    ErrorNormalizer,
    Failure,
    PipelineError,
    Result,
    Success,
)
from optimus_http.monitor import RequestMonitor
from optimus_http.pipeline import RequestDescriptor, RequestPipeline
from optimus_http.transport import HttpxTransport, Transport, log_error_body


class ApiClient:
    """Caller-facing surface: one coroutine per HTTP verb, all returning ``Result``."""

    def __init__(
        self,
        pipeline: RequestPipeline,
        store: CredentialStore,
        *,
        transport: Transport | None = None,
        monitor: RequestMonitor | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.store = store
        self.transport = transport
        self.monitor = monitor

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        skip_auth: bool = False,
        skip_dedup: bool = False,
        headers: Mapping[str, str] | None = None,
    ) -> Result:
        if method.lower() not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        descriptor = RequestDescriptor(
            method=method,
            url=path,
            params=params,
            body=body,
            headers=dict(headers or {}),
            skip_auth=skip_auth,
            skip_dedup=skip_dedup,
        )
        return await self.pipeline.execute(descriptor)

    async def get(self, path: str, params: Mapping[str, Any] | None = None, **options: Any) -> Result:
        return await self.request("GET", path, params=params, **options)

    async def post(self, path: str, body: Any = None, **options: Any) -> Result:
        return await self.request("POST", path, body=body, **options)

    async def put(self, path: str, body: Any = None, **options: Any) -> Result:
        return await self.request("PUT", path, body=body, **options)

    async def patch(self, path: str, body: Any = None, **options: Any) -> Result:
        return await self.request("PATCH", path, body=body, **options)

    async def delete(self, path: str, params: Mapping[str, Any] | None = None, **options: Any) -> Result:
        return await self.request("DELETE", path, params=params, **options)

    def login(self, access_token: str, refresh_token: str, expires_in: int) -> None:
        self.store.set(access_token, refresh_token, expires_in)

    def logout(self) -> None:
        self.store.clear()

    def is_logged_in(self) -> bool:
        return self.store.get() is not None

    def current_user(self) -> dict | None:
        return self.store.current_user()

    async def aclose(self) -> None:
        closer = getattr(self.transport, "aclose", None)
        if closer is not None:
            await closer()
        if self.monitor is not None:
            self.monitor.log_stats()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def build_backend(settings: Settings) -> CredentialBackend:
    if settings.token_store_path:
        return FileCredentialBackend(settings.token_store_path)
    return MemoryCredentialBackend()


def create_client(
    settings: Settings | None = None,
    *,
    transport: Transport | None = None,
    backend: CredentialBackend | None = None,
    refresh_client: httpx.AsyncClient | None = None,
    on_session_expired: Callable[[Failure], None] | None = None,
) -> ApiClient:
    if settings is None:
        load_env()
        setup_logging()
        settings = load_settings()

    monitor = RequestMonitor(enabled=settings.debug)
    if transport is None:
        transport = HttpxTransport(
            base_url=settings.base_url,
            timeout=settings.timeout,
            monitor=monitor,
            event_hooks={"response": [log_error_body]} if settings.debug else None,
        )

    store = CredentialStore(backend or build_backend(settings))
    refresh_url = f"{settings.base_url}{settings.refresh_path}"

    async def refresh(refresh_token: str) -> RefreshGrant:
        return await request_refresh(
            refresh_url,
            refresh_token,
            client=refresh_client,
            timeout=settings.timeout,
        )

    pipeline = RequestPipeline(
        store=store,
        coordinator=RefreshCoordinator(store, refresh),
        coalescer=RequestCoalescer(),
        transport=transport,
        normalizer=ErrorNormalizer(),
        skew_seconds=settings.refresh_skew_seconds,
        on_session_expired=on_session_expired,
    )
    return ApiClient(pipeline, store, transport=transport, monitor=monitor)


def _print_result(result: Result) -> int:
    if isinstance(result, Success):
        print(json.dumps(result.value, indent=2, ensure_ascii=False, default=str))
        return 0
    print(
        json.dumps(
            {"kind": result.kind.value, "status": result.status, "message": result.message},
            indent=2,
            ensure_ascii=False,
        ),
        file=sys.stderr,
    )
    return 1


async def _run(method: str, path: str) -> int:
    async with create_client() as client:
        result = await client.request(method, path)
    return _print_result(result)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print("usage: optimus-request METHOD PATH", file=sys.stderr)
        return 2
    method, path = args
    LOGGER.info("optimus-request %s %s %s", APP_VERSION, method.upper(), path)
    return asyncio.run(_run(method, path))


__all__ = [
    "ApiClient",
    "AuthExpiredError",
    "ErrorKind",
    "Failure",
    "PipelineError",
    "RequestDescriptor",
    "Success",
    "build_backend",
    "create_client",
    "main",
    "validate_env",
]


if __name__ == "__main__":
    sys.exit(main())
