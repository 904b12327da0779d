# trading/brokers/angelone/transport.py

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from trading.brokers.angelone.config import AngelOneConfig
from trading.brokers.http import TimeoutSession, send_json

LOGIN_PATH = "/rest/auth/angelbroking/user/v1/loginByPassword"
PLACE_ORDER_PATH = "/rest/secure/angelbroking/order/v1/placeOrder"
CANCEL_ORDER_PATH = "/rest/secure/angelbroking/order/v1/cancelOrder"
ORDER_DETAILS_PATH = "/rest/secure/angelbroking/order/v1/details/{order_id}"
POSITIONS_PATH = "/rest/secure/angelbroking/order/v1/getPosition"
CANDLES_PATH = "/rest/secure/angelbroking/historical/v1/getCandleData"


class AngelOneTransport:
    """
    Thin HTTP wrapper around the SmartAPI REST endpoints.

    It only knows URLs and headers and returns decoded JSON bodies. Field
    mapping lives in angelone.mappers, token handling in the client. This
    keeps the transport trivially replaceable by a mock in tests.
    """

    def __init__(self, config: AngelOneConfig, session: Optional[requests.Session] = None):
        self.cfg = config
        self.session = session or TimeoutSession()

    def _url(self, path: str) -> str:
        return f"{self.cfg.base_url}{path}"

    def _headers(self, api_key: str, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-UserType": "USER",
            "X-SourceID": "WEB",
            "X-ClientLocalIP": self.cfg.client_local_ip,
            "X-ClientPublicIP": self.cfg.client_public_ip,
            "X-MACAddress": self.cfg.mac_address,
            "X-PrivateKey": api_key,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    def login(self, api_key: str, client_code: str, password: str, totp: str) -> Any:
        body = {"clientcode": client_code, "password": password, "totp": totp}
        return send_json(
            self.session,
            "POST",
            self._url(LOGIN_PATH),
            headers=self._headers(api_key),
            json_body=body,
            allow_error_body=True,
        )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def place_order(self, api_key: str, access_token: str, payload: Dict[str, Any]) -> Any:
        return send_json(
            self.session,
            "POST",
            self._url(PLACE_ORDER_PATH),
            headers=self._headers(api_key, access_token),
            json_body=payload,
            allow_error_body=True,
        )

    def cancel_order(self, api_key: str, access_token: str, order_id: str, variety: str = "NORMAL") -> Any:
        return send_json(
            self.session,
            "POST",
            self._url(CANCEL_ORDER_PATH),
            headers=self._headers(api_key, access_token),
            json_body={"variety": variety, "orderid": order_id},
            allow_error_body=True,
        )

    def order_details(self, api_key: str, access_token: str, order_id: str) -> Any:
        return send_json(
            self.session,
            "GET",
            self._url(ORDER_DETAILS_PATH.format(order_id=order_id)),
            headers=self._headers(api_key, access_token),
            allow_error_body=True,
        )

    # ------------------------------------------------------------------
    # Portfolio / market data
    # ------------------------------------------------------------------
    def positions(self, api_key: str, access_token: str) -> Any:
        return send_json(
            self.session,
            "GET",
            self._url(POSITIONS_PATH),
            headers=self._headers(api_key, access_token),
        )

    def candles(self, api_key: str, access_token: str, body: Dict[str, Any]) -> Any:
        return send_json(
            self.session,
            "POST",
            self._url(CANDLES_PATH),
            headers=self._headers(api_key, access_token),
            json_body=body,
            allow_error_body=True,
        )
