# trading/brokers/dhan/config.py

from __future__ import annotations

from dataclasses import dataclass

from trading.brokers.config import get_int_setting, get_setting

DHAN_DEFAULT_BASE_URL = "https://api.dhan.co"

# Dhan access tokens are generated from the web console and stay valid for
# a day or more; re-validation just re-reads them from the vault.
DHAN_DEFAULT_TOKEN_TTL_SECONDS = 86400


@dataclass
class DhanConfig:
    base_url: str = DHAN_DEFAULT_BASE_URL
    token_ttl_seconds: int = DHAN_DEFAULT_TOKEN_TTL_SECONDS

    def __repr__(self) -> str:
        return f"DhanConfig(base_url={self.base_url!r}, token_ttl_seconds={self.token_ttl_seconds})"


def get_dhan_config(prefix: str = "DHAN_") -> DhanConfig:
    """
    Build a DhanConfig from Django settings and/or environment variables.

    Expected settings / env vars:
      - DHAN_BASE_URL            (default: "https://api.dhan.co")
      - DHAN_TOKEN_TTL_SECONDS   (default: 86400)
    """
    return DhanConfig(
        base_url=get_setting(f"{prefix}BASE_URL", DHAN_DEFAULT_BASE_URL).rstrip("/"),
        token_ttl_seconds=get_int_setting(f"{prefix}TOKEN_TTL_SECONDS", DHAN_DEFAULT_TOKEN_TTL_SECONDS),
    )
