# trading/brokers/types.py

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.utils import timezone


# ---------------------------------------------------------------------------
# NORMALIZED TYPES
#
# Broker-agnostic structures exchanged between the execution layer and the
# adapters. Every adapter (Angel One, Dhan, fakes) accepts and returns these
# types, never raw vendor payloads.
# ---------------------------------------------------------------------------

TOKEN_SAFETY_MARGIN = timedelta(seconds=30)


class OrderSide(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(str, enum.Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"
    STOP_LOSS_MARKET = "STOP_LOSS_MARKET"

    @property
    def requires_price(self) -> bool:
        return self in (OrderType.LIMIT, OrderType.STOP_LOSS)


class TimeInForce(str, enum.Enum):
    DAY = "DAY"
    IOC = "IOC"


class BrokerCapability(str, enum.Enum):
    """
    Named operations an adapter may declare support for.
    """
    PLACE_ORDER = "PLACE_ORDER"
    CANCEL_ORDER = "CANCEL_ORDER"
    MODIFY_ORDER = "MODIFY_ORDER"
    ORDER_STATUS = "ORDER_STATUS"
    ORDER_BOOK = "ORDER_BOOK"
    GET_POSITIONS = "GET_POSITIONS"
    MARKET_DATA_STREAM = "MARKET_DATA_STREAM"
    HISTORICAL_DATA = "HISTORICAL_DATA"
    INSTRUMENT_SEARCH = "INSTRUMENT_SEARCH"


@dataclass
class AuthToken:
    """
    Authentication material for one (broker, account) pair.

    `feed_token` is the vendor's secondary session token (Angel One returns
    one for its market-data feed). `obtained_at` + `ttl_seconds` drive
    expiry; when either is unknown the token is treated as expired.
    """
    access_token: str
    refresh_token: Optional[str] = None
    feed_token: Optional[str] = None
    obtained_at: Optional[datetime] = None
    ttl_seconds: Optional[int] = None

    @classmethod
    def issued_now(cls, access_token: str, ttl_seconds: int, **kwargs: Any) -> "AuthToken":
        return cls(
            access_token=access_token,
            obtained_at=timezone.now(),
            ttl_seconds=ttl_seconds,
            **kwargs,
        )

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.obtained_at is None or self.ttl_seconds is None:
            return None
        return self.obtained_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expiry = self.expires_at
        if expiry is None:
            return True
        now = now or timezone.now()
        return now >= expiry - TOKEN_SAFETY_MARGIN

    def __repr__(self) -> str:
        # Never leak token material into logs
        return (
            f"AuthToken(obtained_at={self.obtained_at!r}, ttl_seconds={self.ttl_seconds}, "
            f"has_refresh={self.refresh_token is not None}, has_feed={self.feed_token is not None})"
        )


@dataclass
class BrokerOrderRequest:
    """
    Canonical order request handed to an adapter.

    Built at execution time by merging a persisted Order with caller metadata.
    It is never stored: the Order keeps only the vendor-neutral `symbol`
    (numeric security id), while human-readable trading symbols, exchange
    segments and product types travel in `meta`.
    """
    symbol: str                        # vendor-neutral security id, e.g. "3045"
    side: OrderSide
    quantity: Decimal
    order_type: OrderType = OrderType.MARKET
    price: Optional[Decimal] = None    # None/0 for market orders
    product_type: Optional[str] = None  # INTRADAY / CNC / MARGIN ...
    client_order_id: Optional[str] = None
    time_in_force: TimeInForce = TimeInForce.DAY
    meta: Dict[str, Any] = field(default_factory=dict)  # tradingSymbol, exchange, productType


@dataclass
class BrokerOrderResponse:
    """
    Normalized result of a place/status call. `order_id` is set only when the
    vendor accepted the order.
    """
    order_id: Optional[str]
    status: str
    message: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return bool(self.order_id)


@dataclass
class BrokerPosition:
    """
    Normalized representation of a single net position.

    All numeric fields are Decimal. `raw` holds the vendor record for
    debugging.
    """
    symbol: str                 # human-readable trading symbol, e.g. "RELIANCE-EQ"
    security_id: str            # vendor-neutral numeric id, e.g. "2885"
    exchange: str
    product_type: str
    net_quantity: Decimal
    avg_price: Decimal
    ltp: Decimal
    pnl: Decimal
    buy_quantity: Decimal
    sell_quantity: Decimal
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def position_type(self) -> str:
        if self.net_quantity > 0:
            return "LONG"
        if self.net_quantity < 0:
            return "SHORT"
        return "FLAT"


@dataclass
class Candle:
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int


@dataclass
class HistoricalDataResult:
    """
    Typed outcome for historical data requests.

    `ok=True` with no candles means the range was empty; `ok=False` means
    the vendor call failed and `error` carries the reason.
    """
    candles: List[Candle] = field(default_factory=list)
    ok: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "HistoricalDataResult":
        return cls(candles=[], ok=False, error=error)
