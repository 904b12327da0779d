# trading/brokers/dhan/client.py

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from trading.brokers.base import BrokerAdapter
from trading.brokers.exceptions import BrokerError, CredentialsMissing, TransportError
from trading.brokers.tokens import TokenCache, get_token_cache
from trading.brokers.types import (
    AuthToken,
    BrokerCapability,
    BrokerOrderRequest,
    BrokerOrderResponse,
    BrokerPosition,
)
from trading.brokers.vault import CredentialVault, get_vault
from trading.brokers.dhan.config import DhanConfig, get_dhan_config
from trading.brokers.dhan.transport import DhanTransport
from trading.brokers.dhan.mappers import (
    DhanCredentials,
    map_cancel_response,
    map_credentials,
    map_order_request,
    map_order_response,
    map_order_status,
    normalize_positions,
)

logger = logging.getLogger(__name__)


class DhanClient(BrokerAdapter):
    """
    BrokerAdapter for Dhan v2.

    Dhan issues a long-lived access token that the user pastes when linking
    the account, so "authentication" just wraps the stored token in an
    AuthToken and caches it. The vendor itself validates it on each call.
    """

    broker_id = "dhan"
    display_name = "Dhan"
    capabilities = frozenset({
        BrokerCapability.PLACE_ORDER,
        BrokerCapability.CANCEL_ORDER,
        BrokerCapability.ORDER_STATUS,
        BrokerCapability.GET_POSITIONS,
    })

    def __init__(
        self,
        config: DhanConfig,
        transport: Optional[DhanTransport] = None,
        vault: Optional[CredentialVault] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self.cfg = config
        self.transport = transport or DhanTransport(config)
        self._vault = vault
        self.tokens = token_cache or get_token_cache()

    @classmethod
    def from_settings(cls) -> "DhanClient":
        return cls(config=get_dhan_config())

    @property
    def vault(self) -> CredentialVault:
        return self._vault or get_vault()

    def _credentials(self, account_id: str) -> DhanCredentials:
        raw = self.vault.read_decrypted_credentials(account_id)
        if raw is None:
            raise CredentialsMissing(f"No credentials found for account: {account_id}")
        return map_credentials(raw)

    # ------------------------------------------------------------------
    # BrokerAdapter implementation
    # ------------------------------------------------------------------
    def authenticate(self, account_id: str) -> AuthToken:
        account_id = str(account_id)

        def load_static_token() -> AuthToken:
            creds = self._credentials(account_id)
            return AuthToken.issued_now(access_token=creds.access_token, ttl_seconds=self.cfg.token_ttl_seconds)

        return self.tokens.get_or_login(self.broker_id, account_id, load_static_token)

    def place_order(self, account_id: str, request: BrokerOrderRequest) -> BrokerOrderResponse:
        creds = self._credentials(str(account_id))
        payload = map_order_request(request, creds.client_id)
        token = self.authenticate(account_id)
        raw = self.transport.place_order(token.access_token, payload)
        response = map_order_response(raw)
        logger.info(
            f"Dhan order placed: account={account_id} security={payload['securityId']} "
            f"side={payload['transactionType']} qty={payload['quantity']} order_id={response.order_id}"
        )
        return response

    def cancel_order(self, account_id: str, broker_order_id: str) -> None:
        token = self.authenticate(account_id)
        map_cancel_response(self.transport.cancel_order(token.access_token, broker_order_id), broker_order_id)

    def get_order_status(self, account_id: str, broker_order_id: str) -> BrokerOrderResponse:
        token = self.authenticate(account_id)
        return map_order_status(self.transport.order_status(token.access_token, broker_order_id), broker_order_id)

    def get_positions(self, account_id: str) -> List[BrokerPosition]:
        token = self.authenticate(account_id)
        return normalize_positions(self.transport.positions(token.access_token))

    def validate_credentials(self, raw_credentials: Mapping[str, Any]) -> bool:
        try:
            creds = map_credentials(raw_credentials)
            ok = self.transport.probe(creds.access_token)
        except (BrokerError, ValueError, TypeError) as exc:
            logger.warning(f"Dhan credential validation failed: {exc}")
            return False
        if not ok:
            logger.warning(f"Dhan rejected access token for client {creds.client_id}")
        return ok
