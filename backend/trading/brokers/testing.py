# trading/brokers/testing.py

from __future__ import annotations

import itertools
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from trading.brokers.base import BrokerAdapter
from trading.brokers.types import (
    AuthToken,
    BrokerCapability,
    BrokerOrderRequest,
    BrokerOrderResponse,
    BrokerPosition,
    Candle,
    HistoricalDataResult,
)


class FakeBrokerAdapter(BrokerAdapter):
    """
    Simple in-memory broker implementation for tests.

    Records every request it receives. Pre-load it with positions/candles,
    make the next placement fail with `fail_with`, or hook `on_place` to run
    code while an order is "at the vendor" (used by concurrency tests).
    """

    broker_id = "fake"
    display_name = "Fake Broker"
    capabilities = frozenset({
        BrokerCapability.PLACE_ORDER,
        BrokerCapability.CANCEL_ORDER,
        BrokerCapability.ORDER_STATUS,
        BrokerCapability.GET_POSITIONS,
        BrokerCapability.HISTORICAL_DATA,
    })

    def __init__(
            self,
            positions: Iterable[BrokerPosition] | None = None,
            candles: Iterable[Candle] | None = None,
            order_ids: Iterable[str] | None = None,
            broker_id: str | None = None,
            valid_credentials: bool = True,
    ):
        if broker_id:
            self.broker_id = broker_id
        self.positions: List[BrokerPosition] = list(positions or [])
        self.candles: List[Candle] = list(candles or [])
        self._order_ids = iter(order_ids) if order_ids is not None else (f"FAKE-{n}" for n in itertools.count(1))
        self.valid_credentials = valid_credentials

        self.placed: List[tuple] = []
        self.cancelled: List[tuple] = []
        self.authenticated: List[str] = []
        self.fail_with: Optional[Exception] = None
        self.history_error: Optional[str] = None
        self.on_place: Optional[Callable[[str, BrokerOrderRequest], Any]] = None
        self._lock = threading.Lock()

    def authenticate(self, account_id: str) -> AuthToken:
        self.authenticated.append(str(account_id))
        return AuthToken.issued_now(access_token="fake-token", ttl_seconds=3600)

    def place_order(self, account_id: str, request: BrokerOrderRequest) -> BrokerOrderResponse:
        with self._lock:
            self.placed.append((str(account_id), request))
        if self.on_place is not None:
            self.on_place(account_id, request)
        if self.fail_with is not None:
            raise self.fail_with
        order_id = next(self._order_ids)
        return BrokerOrderResponse(order_id=order_id, status="PLACED", message="fake", raw={"orderId": order_id})

    def cancel_order(self, account_id: str, broker_order_id: str) -> None:
        self.cancelled.append((str(account_id), broker_order_id))

    def get_order_status(self, account_id: str, broker_order_id: str) -> BrokerOrderResponse:
        return BrokerOrderResponse(order_id=broker_order_id, status="PLACED")

    def get_positions(self, account_id: str) -> List[BrokerPosition]:
        return list(self.positions)

    def get_historical_data(
            self,
            account_id: str,
            symbol: str,
            interval: str,
            from_ts: datetime,
            to_ts: datetime,
    ) -> HistoricalDataResult:
        if self.history_error:
            return HistoricalDataResult.failed(self.history_error)
        return HistoricalDataResult(candles=[c for c in self.candles if from_ts <= c.timestamp <= to_ts])

    def validate_credentials(self, raw_credentials: Mapping[str, Any]) -> bool:
        return self.valid_credentials


class InMemoryVault:
    """
    CredentialVault stand-in keyed by account id. `encrypt` returns a
    reference string; tests seed plaintext via `store`.
    """

    def __init__(self, credentials: Dict[str, Dict[str, Any]] | None = None):
        self.credentials: Dict[str, Dict[str, Any]] = dict(credentials or {})
        self.encrypted: List[Dict[str, Any]] = []

    def store(self, account_id: Any, credentials: Mapping[str, Any]) -> None:
        self.credentials[str(account_id)] = dict(credentials)

    def read_decrypted_credentials(self, account_id: str) -> Optional[Dict[str, Any]]:
        creds = self.credentials.get(str(account_id))
        return dict(creds) if creds is not None else None

    def encrypt(self, credentials: Mapping[str, Any]) -> str:
        self.encrypted.append(dict(credentials))
        return f"plain:{len(self.encrypted)}"


def make_simple_fake_position(
        symbol: str = "RELIANCE-EQ",
        security_id: str = "2885",
        net_quantity: str = "10",
) -> BrokerPosition:
    """
    Convenience helper: build a simple BrokerPosition for tests.
    """
    net = Decimal(net_quantity)
    return BrokerPosition(
        symbol=symbol,
        security_id=security_id,
        exchange="NSE_EQ",
        product_type="INTRADAY",
        net_quantity=net,
        avg_price=Decimal("2450.50"),
        ltp=Decimal("2460.00"),
        pnl=Decimal("95.00"),
        buy_quantity=net if net > 0 else Decimal("0"),
        sell_quantity=-net if net < 0 else Decimal("0"),
        raw={"source": "fake"},
    )
