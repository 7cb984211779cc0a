from __future__ import annotations

from dataclasses import dataclass


class RefreshFailure(RuntimeError):
    """Raised when the refresh endpoint does not hand back a usable grant."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CredentialSet:
    access_token: str
    refresh_token: str
    expires_at_ms: int


@dataclass
class RefreshGrant:
    access_token: str
    refresh_token: str
    expires_in: int

    @classmethod
    def from_payload(cls, payload: object) -> "RefreshGrant":
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict):
            raise RefreshFailure("Refresh response is not a JSON object.")

        access_token = payload.get("accessToken", payload.get("access_token"))
        refresh_token = payload.get("refreshToken", payload.get("refresh_token"))
        expires_in = payload.get("expiresIn", payload.get("expires_in"))

        if not isinstance(access_token, str) or not access_token:
            raise RefreshFailure("Refresh response missing accessToken.")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise RefreshFailure("Refresh response missing refreshToken.")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise RefreshFailure("Refresh response missing expiresIn.")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
        )
