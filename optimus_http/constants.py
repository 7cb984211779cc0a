from __future__ import annotations

import logging

HTTP_METHODS = {
    "get",
    "post",
    "put",
    "patch",
    "delete",
}

# Only these are eligible for in-flight coalescing.
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

LOGGER = logging.getLogger("optimus.http")
APP_VERSION = "0.1.0"

DEFAULT_BASE_URL = "http://localhost:3001"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_DEDUP_WINDOW_SECONDS = 1.0
DEFAULT_MONITOR_CAPACITY = 100
