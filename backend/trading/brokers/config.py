# trading/brokers/config.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, List, Optional

try:
    from django.conf import settings
except ImportError:  # pragma: no cover - allows use without Django installed
    settings = None


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Helper that checks Django settings first (if configured), then environment.
    """
    # 1) Django settings if available
    if settings is not None and settings.configured and hasattr(settings, name):
        value = getattr(settings, name)
        if value is not None:
            return value if isinstance(value, str) else str(value)

    # 2) Environment variable
    return os.getenv(name, default)


def get_int_setting(name: str, default: int) -> int:
    value = get_setting(name)
    if value is None or str(value).strip() == "":
        return default
    return int(value)


def get_float_setting(name: str, default: float) -> float:
    value = get_setting(name)
    if value is None or str(value).strip() == "":
        return default
    return float(value)


def get_list_setting(name: str, default: List[str]) -> List[str]:
    """
    Lists may be configured as a Python list in settings or as a
    comma-separated env var.
    """
    if settings is not None and settings.configured and hasattr(settings, name):
        value: Any = getattr(settings, name)
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
    raw = get_setting(name)
    if raw is None:
        return list(default)
    return [part.strip() for part in str(raw).split(",") if part.strip()]


@dataclass
class HttpTimeoutConfig:
    """
    Per-call HTTP timeouts applied to every vendor request.

    Resolution order for each value:
      1) Django settings.BROKER_HTTP_CONNECT_TIMEOUT / BROKER_HTTP_READ_TIMEOUT
      2) Environment variables of the same name
      3) Defaults: connect 5s, read 15s
    """
    connect: float = 5.0
    read: float = 15.0

    def as_tuple(self) -> tuple:
        return (self.connect, self.read)


def get_http_timeout_config() -> HttpTimeoutConfig:
    return HttpTimeoutConfig(
        connect=get_float_setting("BROKER_HTTP_CONNECT_TIMEOUT", 5.0),
        read=get_float_setting("BROKER_HTTP_READ_TIMEOUT", 15.0),
    )
