# trading/brokers/dhan/transport.py

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from trading.brokers.dhan.config import DhanConfig
from trading.brokers.exceptions import TransportError
from trading.brokers.http import TimeoutSession, send_json

ORDERS_PATH = "/v2/orders"
ORDER_PATH = "/v2/orders/{order_id}"
POSITIONS_PATH = "/v2/positions"


class DhanTransport:
    """
    Thin HTTP wrapper around the Dhan v2 REST API.

    Dhan authenticates every call with the static `access-token` header,
    so there is no login endpoint here.
    """

    def __init__(self, config: DhanConfig, session: Optional[requests.Session] = None):
        self.cfg = config
        self.session = session or TimeoutSession()

    def _url(self, path: str) -> str:
        return f"{self.cfg.base_url}{path}"

    @staticmethod
    def _headers(access_token: str) -> Dict[str, str]:
        return {
            "access-token": access_token.strip(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def probe(self, access_token: str) -> bool:
        """
        Lightweight credential check: a 2xx on the positions endpoint.
        """
        try:
            response = self.session.get(self._url(POSITIONS_PATH), headers=self._headers(access_token))
        except requests.RequestException as exc:
            raise TransportError(f"Dhan probe failed: {exc}") from exc
        return 200 <= response.status_code < 300

    def place_order(self, access_token: str, payload: Dict[str, Any]) -> Any:
        return send_json(
            self.session,
            "POST",
            self._url(ORDERS_PATH),
            headers=self._headers(access_token),
            json_body=payload,
            allow_error_body=True,
        )

    def cancel_order(self, access_token: str, order_id: str) -> Any:
        return send_json(
            self.session,
            "DELETE",
            self._url(ORDER_PATH.format(order_id=order_id)),
            headers=self._headers(access_token),
            allow_error_body=True,
        )

    def order_status(self, access_token: str, order_id: str) -> Any:
        return send_json(
            self.session,
            "GET",
            self._url(ORDER_PATH.format(order_id=order_id)),
            headers=self._headers(access_token),
            allow_error_body=True,
        )

    def positions(self, access_token: str) -> Any:
        return send_json(
            self.session,
            "GET",
            self._url(POSITIONS_PATH),
            headers=self._headers(access_token),
        )
