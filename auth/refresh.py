from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from auth.models import RefreshFailure, RefreshGrant
from auth.token_store import CredentialStore

LOGGER = logging.getLogger("optimus.auth")

DEFAULT_REFRESH_PATH = "/client-user/refresh"

RefreshFn = Callable[[str], Awaitable[RefreshGrant]]


async def request_refresh(
    refresh_url: str,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> RefreshGrant:
    own_client = client is None
    http_client = client or httpx.AsyncClient(timeout=timeout)

    try:
        response = await http_client.post(refresh_url, json={"refreshToken": refresh_token})
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as error:
        detail = error.response.text
        raise RefreshFailure(
            f"Refresh request failed with status {error.response.status_code}: {detail}",
            status_code=error.response.status_code,
        ) from error
    except httpx.HTTPError as error:
        raise RefreshFailure(f"Refresh request failed: {error}") from error
    except ValueError as error:
        raise RefreshFailure("Refresh response is not valid JSON.") from error
    finally:
        if own_client:
            await http_client.aclose()

    return RefreshGrant.from_payload(payload)


class RefreshCoordinator:
    """Single-flight credential refresh.

    Every caller that arrives while a refresh is running awaits the same
    task and observes the same outcome. The slot is emptied when that task
    finishes, whatever the outcome, so a later expiry starts a new flight.
    """

    def __init__(self, store: CredentialStore, refresh_fn: RefreshFn) -> None:
        self._store = store
        self._refresh_fn = refresh_fn
        self._inflight: asyncio.Task[bool] | None = None
        self.refresh_count = 0

    @property
    def refreshing(self) -> bool:
        return self._inflight is not None

    async def ensure_fresh(self, *, stale_token: str | None = None) -> bool:
        if self._inflight is None:
            if stale_token is not None:
                current = self._store.access_token()
                if current is not None and current != stale_token:
                    return True
            self._inflight = asyncio.ensure_future(self._run())
        # Shielded so one waiter being cancelled does not cancel the flight.
        return await asyncio.shield(self._inflight)

    async def _run(self) -> bool:
        try:
            refresh_token = self._store.refresh_token()
            if not refresh_token:
                LOGGER.info("No refresh token available; clearing credentials")
                self._store.clear()
                return False

            self.refresh_count += 1
            try:
                grant = await self._refresh_fn(refresh_token)
            except RefreshFailure as error:
                LOGGER.warning("Credential refresh failed: %s", error)
                self._store.clear()
                return False
            except Exception:
                LOGGER.exception("Credential refresh raised unexpectedly")
                self._store.clear()
                return False

            self._store.set(grant.access_token, grant.refresh_token, grant.expires_in)
            LOGGER.info("Credentials refreshed; expires in %ss", grant.expires_in)
            return True
        finally:
            self._inflight = None
