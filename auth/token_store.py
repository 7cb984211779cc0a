from __future__ import annotations

import base64
import binascii
import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict
from pathlib import Path

from auth.models import CredentialSet

DEFAULT_SKEW_SECONDS = 300


def _now_ms() -> int:
    return int(time.time() * 1000)


class CredentialBackend(ABC):
    """Persistence medium for a single credential set."""

    @abstractmethod
    def load(self) -> CredentialSet | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, data: CredentialSet) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self) -> None:
        raise NotImplementedError


class MemoryCredentialBackend(CredentialBackend):
    def __init__(self) -> None:
        self._credentials: CredentialSet | None = None

    def load(self) -> CredentialSet | None:
        return self._credentials

    def save(self, data: CredentialSet) -> None:
        self._credentials = data

    def delete(self) -> None:
        self._credentials = None


class FileCredentialBackend(CredentialBackend):
    def __init__(self, path: str | Path = ".credentials.json") -> None:
        self._path = Path(path)

    def load(self) -> CredentialSet | None:
        if not self._path.exists():
            return None

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("Credential file is invalid; expected top-level JSON object.")
        try:
            return CredentialSet(
                access_token=raw["access_token"],
                refresh_token=raw["refresh_token"],
                expires_at_ms=int(raw["expires_at_ms"]),
            )
        except (KeyError, TypeError, ValueError):
            # A partially written pair is never returned.
            return None

    def save(self, data: CredentialSet) -> None:
        self._write(asdict(data))

    def delete(self) -> None:
        if self._path.exists():
            self._path.unlink()

    def _write(self, payload: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()


class CredentialStore:
    """Holds the current access/refresh pair and its absolute expiry.

    Reads and writes are synchronous and go straight to the backend, so a
    write is visible to the very next ``get()``. The pair is always stored
    and removed as a whole.
    """

    def __init__(
        self,
        backend: CredentialBackend | None = None,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._backend = backend or MemoryCredentialBackend()
        self._clock = clock

    def get(self) -> CredentialSet | None:
        return self._backend.load()

    def set(self, access_token: str, refresh_token: str, expires_in_seconds: int) -> CredentialSet:
        if not access_token or not refresh_token:
            raise ValueError("access_token and refresh_token are both required.")
        credentials = CredentialSet(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at_ms=self._clock() + int(expires_in_seconds) * 1000,
        )
        self._backend.save(credentials)
        return credentials

    def clear(self) -> None:
        self._backend.delete()

    def access_token(self) -> str | None:
        credentials = self.get()
        return None if credentials is None else credentials.access_token

    def refresh_token(self) -> str | None:
        credentials = self.get()
        return None if credentials is None else credentials.refresh_token

    def current_user(self) -> dict | None:
        """Claims from the access token's JWT payload. The signature is not checked."""
        token = self.access_token()
        if token is None:
            return None
        parts = token.split(".")
        if len(parts) != 3:
            return None
        try:
            data = base64.urlsafe_b64decode(parts[1] + "=" * (-len(parts[1]) % 4))
            claims = json.loads(data)
        except (binascii.Error, ValueError):
            return None
        return claims if isinstance(claims, dict) else None

    def is_near_expiry(self, skew_seconds: int = DEFAULT_SKEW_SECONDS) -> bool:
        credentials = self.get()
        if credentials is None:
            # Unauthenticated: there is no refresh token to spend.
            return False
        return self._clock() >= credentials.expires_at_ms - skew_seconds * 1000
