# trading/brokers/http.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .config import HttpTimeoutConfig, get_http_timeout_config
from .exceptions import TransportError

logger = logging.getLogger(__name__)


class TimeoutSession(requests.Session):
    """Requests ``Session`` that injects a default (connect, read) timeout."""

    def __init__(self, timeouts: Optional[HttpTimeoutConfig] = None) -> None:
        super().__init__()
        self.default_timeout = (timeouts or get_http_timeout_config()).as_tuple()

    def request(self, method, url, **kwargs):  # type: ignore[override]
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.default_timeout
        return super().request(method, url, **kwargs)


def send_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    json_body: Any = None,
    allow_error_body: bool = False,
) -> Any:
    """
    Issue a request and return the decoded JSON body.

    Network failures and timeouts become TransportError. Non-2xx answers
    also become TransportError unless `allow_error_body` is set and the body
    is JSON, in which case the body is returned so the vendor mapper can
    turn the vendor's own error message into VendorRejected.
    """
    try:
        response = session.request(method, url, headers=headers, json=json_body)
    except requests.Timeout as exc:
        raise TransportError(f"{method} {url} timed out: {exc}") from exc
    except requests.RequestException as exc:
        raise TransportError(f"{method} {url} failed: {exc}") from exc

    try:
        body = response.json()
    except ValueError:
        body = None

    if not response.ok:
        if allow_error_body and isinstance(body, dict):
            logger.warning(f"{method} {url} returned HTTP {response.status_code} with vendor error body")
            return body
        raise TransportError(
            f"{method} {url} returned HTTP {response.status_code}",
            status_code=response.status_code,
        )

    if body is None and response.content:
        raise TransportError(
            f"{method} {url} returned a non-JSON body",
            status_code=response.status_code,
        )
    return body
