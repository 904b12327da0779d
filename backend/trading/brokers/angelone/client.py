# trading/brokers/angelone/client.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, TypeVar

import pyotp

from trading.brokers.base import BrokerAdapter
from trading.brokers.exceptions import BrokerError, CredentialsMissing, TransportError, VendorRejected
from trading.brokers.tokens import TokenCache, get_token_cache
from trading.brokers.types import (
    AuthToken,
    BrokerCapability,
    BrokerOrderRequest,
    BrokerOrderResponse,
    BrokerPosition,
    HistoricalDataResult,
)
from trading.brokers.vault import CredentialVault, get_vault
from trading.brokers.angelone.config import AngelOneConfig, get_angelone_config
from trading.brokers.angelone.transport import AngelOneTransport
from trading.brokers.angelone.mappers import (
    AngelOneCredentials,
    is_session_rejected,
    map_cancel_response,
    map_candle_request,
    map_candles,
    map_credentials,
    map_login_response,
    map_order_details,
    map_order_request,
    map_order_response,
    normalize_positions,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_REJECTED_STATUSES = (401, 403)


class AngelOneClient(BrokerAdapter):
    """
    BrokerAdapter for Angel One SmartAPI.

    Responsibilities:
      - Log in with client code + password + TOTP and keep the resulting
        JWT session in the shared TokenCache (8h assumed validity)
      - Map canonical requests/positions/candles via angelone.mappers
      - Never expose SmartAPI payloads to the rest of the system

    Credentials are read from the vault on every call; the API key is
    needed as a header on every secure request.
    """

    broker_id = "angelone"
    display_name = "Angel One"
    capabilities = frozenset({
        BrokerCapability.PLACE_ORDER,
        BrokerCapability.CANCEL_ORDER,
        BrokerCapability.ORDER_STATUS,
        BrokerCapability.GET_POSITIONS,
        BrokerCapability.HISTORICAL_DATA,
    })

    def __init__(
        self,
        config: AngelOneConfig,
        transport: Optional[AngelOneTransport] = None,
        vault: Optional[CredentialVault] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self.cfg = config
        self.transport = transport or AngelOneTransport(config)
        self._vault = vault
        self.tokens = token_cache or get_token_cache()

    # ------------------------------------------------------------------
    # Factory constructor
    # ------------------------------------------------------------------
    @classmethod
    def from_settings(cls) -> "AngelOneClient":
        return cls(config=get_angelone_config())

    @property
    def vault(self) -> CredentialVault:
        return self._vault or get_vault()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def _credentials(self, account_id: str) -> AngelOneCredentials:
        raw = self.vault.read_decrypted_credentials(account_id)
        if raw is None:
            raise CredentialsMissing(f"No credentials found for account: {account_id}")
        return map_credentials(raw)

    def _login(self, creds: AngelOneCredentials) -> AuthToken:
        totp = pyotp.TOTP(creds.totp_key).now()
        raw = self.transport.login(creds.api_key, creds.client_code, creds.password, totp)
        token = map_login_response(raw, self.cfg.token_ttl_seconds)
        logger.info(f"Angel One login succeeded for client {creds.client_code}")
        return token

    def authenticate(self, account_id: str) -> AuthToken:
        account_id = str(account_id)
        return self.tokens.get_or_login(
            self.broker_id,
            account_id,
            lambda: self._login(self._credentials(account_id)),
        )

    def _secure_call(self, account_id: str, call: Callable[[str, str], T]) -> T:
        """
        Run `call(api_key, access_token)` with a valid session.

        If SmartAPI rejects the session, the cached token is dropped so the
        next operation logs in again. The rejection arrives either as a bare
        HTTP 401/403 or as a JSON error body carrying an AG800x code. The
        failed call itself is not retried.
        """
        account_id = str(account_id)
        token = self.authenticate(account_id)
        creds = self._credentials(account_id)
        try:
            raw = call(creds.api_key, token.access_token)
        except TransportError as exc:
            if exc.status_code in SESSION_REJECTED_STATUSES:
                self._drop_session(account_id)
            raise
        if is_session_rejected(raw):
            self._drop_session(account_id)
        return raw

    def _drop_session(self, account_id: str) -> None:
        logger.warning(f"Angel One rejected session for account {account_id}; dropping cached token")
        self.tokens.invalidate(self.broker_id, account_id)

    # ------------------------------------------------------------------
    # BrokerAdapter implementation
    # ------------------------------------------------------------------
    def place_order(self, account_id: str, request: BrokerOrderRequest) -> BrokerOrderResponse:
        payload = map_order_request(request)
        raw = self._secure_call(
            account_id,
            lambda api_key, jwt: self.transport.place_order(api_key, jwt, payload),
        )
        response = map_order_response(raw)
        logger.info(
            f"Angel One order placed: account={account_id} symbol={payload['tradingsymbol']} "
            f"side={payload['transactiontype']} qty={payload['quantity']} order_id={response.order_id}"
        )
        return response

    def cancel_order(self, account_id: str, broker_order_id: str) -> None:
        raw = self._secure_call(
            account_id,
            lambda api_key, jwt: self.transport.cancel_order(api_key, jwt, broker_order_id),
        )
        map_cancel_response(raw, broker_order_id)

    def get_order_status(self, account_id: str, broker_order_id: str) -> BrokerOrderResponse:
        raw = self._secure_call(
            account_id,
            lambda api_key, jwt: self.transport.order_details(api_key, jwt, broker_order_id),
        )
        return map_order_details(raw, broker_order_id)

    def get_positions(self, account_id: str) -> List[BrokerPosition]:
        body = self._secure_call(
            account_id,
            lambda api_key, jwt: self.transport.positions(api_key, jwt),
        )
        return normalize_positions(body)

    def get_historical_data(
        self,
        account_id: str,
        symbol: str,
        interval: str,
        from_ts: datetime,
        to_ts: datetime,
    ) -> HistoricalDataResult:
        body = map_candle_request(symbol, interval, from_ts, to_ts)
        try:
            raw = self._secure_call(
                account_id,
                lambda api_key, jwt: self.transport.candles(api_key, jwt, body),
            )
        except (TransportError, VendorRejected) as exc:
            logger.warning(f"Angel One historical data request failed for {symbol}: {exc}")
            return HistoricalDataResult.failed(str(exc))
        return map_candles(raw)

    def validate_credentials(self, raw_credentials: Mapping[str, Any]) -> bool:
        """
        Validate by performing a real login. The resulting session is not
        cached because no account exists yet.
        """
        try:
            creds = map_credentials(raw_credentials)
            self._login(creds)
            return True
        except (BrokerError, ValueError, TypeError) as exc:
            logger.warning(f"Angel One credential validation failed: {exc}")
            return False
