from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, ValidationError

from auth.refresh import DEFAULT_REFRESH_PATH
from auth.token_store import DEFAULT_SKEW_SECONDS

from .constants import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS, LOGGER


@dataclass(frozen=True)
class Settings:
    base_url: str
    timeout: float
    refresh_path: str
    refresh_skew_seconds: int
    token_store_path: str | None
    debug: bool


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    base_url = os.getenv("OPTIMUS_API_BASE_URL", DEFAULT_BASE_URL).strip()
    try:
        AnyHttpUrl(base_url)
    except ValidationError:
        raise RuntimeError(
            "OPTIMUS_API_BASE_URL must be a valid HTTP(S) URL (for example: "
            "https://api.example.com)."
        )

    if _get_env_float("OPTIMUS_API_TIMEOUT", DEFAULT_TIMEOUT_SECONDS) <= 0:
        raise RuntimeError("OPTIMUS_API_TIMEOUT must be greater than zero.")

    if _get_env_int("OPTIMUS_REFRESH_SKEW_SECONDS", DEFAULT_SKEW_SECONDS) < 0:
        raise RuntimeError("OPTIMUS_REFRESH_SKEW_SECONDS must not be negative.")

    refresh_path = os.getenv("OPTIMUS_REFRESH_PATH", DEFAULT_REFRESH_PATH).strip()
    if not refresh_path.startswith("/"):
        raise RuntimeError("OPTIMUS_REFRESH_PATH must start with '/'.")


def load_settings() -> Settings:
    validate_env()
    token_store_path = os.getenv("OPTIMUS_TOKEN_STORE_PATH", "").strip() or None
    return Settings(
        base_url=os.getenv("OPTIMUS_API_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/"),
        timeout=_get_env_float("OPTIMUS_API_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        refresh_path=os.getenv("OPTIMUS_REFRESH_PATH", DEFAULT_REFRESH_PATH).strip(),
        refresh_skew_seconds=_get_env_int("OPTIMUS_REFRESH_SKEW_SECONDS", DEFAULT_SKEW_SECONDS),
        token_store_path=token_store_path,
        debug=is_truthy(os.getenv("OPTIMUS_API_DEBUG", "0")),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("OPTIMUS_API_DEBUG", "0"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
        logging.getLogger("optimus.auth").setLevel(logging.INFO)
    return debug_enabled
