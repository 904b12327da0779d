# trading/brokers/angelone/config.py

from __future__ import annotations

from dataclasses import dataclass

from trading.brokers.config import get_int_setting, get_setting

ANGELONE_DEFAULT_BASE_URL = "https://apiconnect.angelone.in"

# SmartAPI does not state a validity in its login response; sessions last
# roughly one trading day, we assume 8 hours.
ANGELONE_DEFAULT_TOKEN_TTL_SECONDS = 28800


@dataclass
class AngelOneConfig:
    """
    Connection settings for the Angel One SmartAPI.

    SmartAPI requires the caller to identify itself with local/public IPs
    and a MAC address on every request. Placeholders are accepted.
    """
    base_url: str = ANGELONE_DEFAULT_BASE_URL
    client_local_ip: str = "127.0.0.1"
    client_public_ip: str = "127.0.0.1"
    mac_address: str = "00:00:00:00:00:00"
    token_ttl_seconds: int = ANGELONE_DEFAULT_TOKEN_TTL_SECONDS

    def __repr__(self) -> str:
        return (
            f"AngelOneConfig(base_url={self.base_url!r}, "
            f"token_ttl_seconds={self.token_ttl_seconds})"
        )


def get_angelone_config(prefix: str = "ANGELONE_") -> AngelOneConfig:
    """
    Build an AngelOneConfig from Django settings and/or environment variables.

    Resolution order for each parameter:
      1) Django settings.<PREFIX>BASE_URL / CLIENT_LOCAL_IP / ...
      2) Environment variables with the same names
      3) Hard-coded defaults

    Expected settings / env vars:
      - ANGELONE_BASE_URL            (default: "https://apiconnect.angelone.in")
      - ANGELONE_CLIENT_LOCAL_IP     (default: "127.0.0.1")
      - ANGELONE_CLIENT_PUBLIC_IP    (default: "127.0.0.1")
      - ANGELONE_MAC_ADDRESS         (default: "00:00:00:00:00:00")
      - ANGELONE_TOKEN_TTL_SECONDS   (default: 28800)
    """
    return AngelOneConfig(
        base_url=get_setting(f"{prefix}BASE_URL", ANGELONE_DEFAULT_BASE_URL).rstrip("/"),
        client_local_ip=get_setting(f"{prefix}CLIENT_LOCAL_IP", "127.0.0.1"),
        client_public_ip=get_setting(f"{prefix}CLIENT_PUBLIC_IP", "127.0.0.1"),
        mac_address=get_setting(f"{prefix}MAC_ADDRESS", "00:00:00:00:00:00"),
        token_ttl_seconds=get_int_setting(
            f"{prefix}TOKEN_TTL_SECONDS", ANGELONE_DEFAULT_TOKEN_TTL_SECONDS
        ),
    )
