# trading/brokers/angelone/mappers.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, Iterable, List, Mapping
from zoneinfo import ZoneInfo

from trading.brokers.exceptions import AuthenticationFailed, CredentialsMissing, MappingError, VendorRejected
from trading.brokers.mapping import (
    first_nonzero,
    format_decimal,
    has_value,
    positive_quantity,
    ratio,
    to_decimal,
)
from trading.brokers.types import (
    AuthToken,
    BrokerOrderRequest,
    BrokerOrderResponse,
    BrokerPosition,
    Candle,
    HistoricalDataResult,
    OrderType,
)

logger = logging.getLogger(__name__)

IST = ZoneInfo("Asia/Kolkata")
VENDOR_TIME_FORMAT = "%Y-%m-%d %H:%M"

EQUITY_SUFFIX = "-EQ"
EQUITY_SEGMENTS = {"NSE", "NSE_EQ"}
DEFAULT_EXCHANGE = "NSE_EQ"
DEFAULT_PRODUCT_TYPE = "INTRADAY"

# Dhan-style segment names (what the UI and scheduler send) -> SmartAPI exchange codes
EXCHANGE_CODES = {
    "NSE": "NSE",
    "NSE_EQ": "NSE",
    "BSE": "BSE",
    "BSE_EQ": "BSE",
    "NFO": "NFO",
    "NSE_FNO": "NFO",
    "MCX": "MCX",
    "MCX_COMM": "MCX",
}

ORDER_TYPES = {
    OrderType.MARKET: "MARKET",
    OrderType.LIMIT: "LIMIT",
    OrderType.STOP_LOSS: "STOPLOSS_LIMIT",
    OrderType.STOP_LOSS_MARKET: "STOPLOSS_MARKET",
}

INTERVALS = {
    "1M": "ONE_MINUTE",
    "ONE_MINUTE": "ONE_MINUTE",
    "5M": "FIVE_MINUTE",
    "FIVE_MINUTE": "FIVE_MINUTE",
    "15M": "FIFTEEN_MINUTE",
    "FIFTEEN_MINUTE": "FIFTEEN_MINUTE",
    "1H": "ONE_HOUR",
    "ONE_HOUR": "ONE_HOUR",
    "1D": "ONE_DAY",
    "ONE_DAY": "ONE_DAY",
}
DEFAULT_INTERVAL = "FIVE_MINUTE"


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

@dataclass
class AngelOneCredentials:
    client_code: str
    password: str
    totp_key: str
    api_key: str

    def __repr__(self) -> str:
        return f"AngelOneCredentials(client_code={self.client_code!r})"


def map_credentials(raw: Mapping[str, Any]) -> AngelOneCredentials:
    """
    Parse the decrypted credential JSON stored for an Angel One account.
    """
    if not isinstance(raw, Mapping):
        raise CredentialsMissing("Angel One credentials must be a JSON object")

    fields = {
        "client_code": raw.get("clientCode"),
        "password": raw.get("password"),
        "totp_key": raw.get("totpKey"),
        "api_key": raw.get("apiKey"),
    }
    missing = [name for name, value in fields.items() if not value or not str(value).strip()]
    if missing:
        raise CredentialsMissing(f"Angel One credentials missing fields: {', '.join(missing)}")
    return AngelOneCredentials(**{name: str(value).strip() for name, value in fields.items()})


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def map_login_response(raw: Any, ttl_seconds: int) -> AuthToken:
    """
    Map a loginByPassword response into an AuthToken.

    SmartAPI returns {status, message, data: {jwtToken, refreshToken, feedToken}}.
    Any non-true status or missing jwt is an AuthenticationFailed.
    """
    if not isinstance(raw, dict):
        raise AuthenticationFailed("Angel login failed: unexpected response shape")

    if not raw.get("status"):
        raise AuthenticationFailed(f"Angel login failed: {raw.get('message') or 'unknown error'}")

    data = raw.get("data")
    if not isinstance(data, dict) or not data.get("jwtToken"):
        raise AuthenticationFailed("Angel login failed: missing 'data.jwtToken' in login response")

    return AuthToken.issued_now(
        access_token=data["jwtToken"],
        ttl_seconds=int(data.get("expiresIn") or ttl_seconds),
        refresh_token=data.get("refreshToken") or None,
        feed_token=data.get("feedToken") or None,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def ensure_equity_suffix(trading_symbol: str, exchange: str) -> str:
    """
    SmartAPI names NSE cash-segment symbols with a "-EQ" suffix. Append it
    exactly once; other segments are left untouched.
    """
    if exchange.upper() in EQUITY_SEGMENTS and not trading_symbol.endswith(EQUITY_SUFFIX):
        return trading_symbol + EQUITY_SUFFIX
    return trading_symbol


def map_exchange(exchange: str) -> str:
    return EXCHANGE_CODES.get(exchange.upper(), exchange.upper())


def map_order_request(request: BrokerOrderRequest) -> Dict[str, Any]:
    """
    Map a BrokerOrderRequest into a SmartAPI placeOrder payload.

    SmartAPI needs both the human-readable trading symbol (from
    meta["tradingSymbol"]) and the numeric symbol token (request.symbol).
    """
    meta = request.meta or {}

    trading_symbol = meta.get("tradingSymbol")
    if not trading_symbol or not str(trading_symbol).strip():
        raise MappingError("Missing tradingSymbol in order metadata")

    exchange = str(meta.get("exchange") or DEFAULT_EXCHANGE)
    trading_symbol = ensure_equity_suffix(str(trading_symbol).strip(), exchange)

    quantity = positive_quantity(request.quantity)
    product_type = meta.get("productType") or request.product_type or DEFAULT_PRODUCT_TYPE

    return {
        "variety": "NORMAL",
        "tradingsymbol": trading_symbol,
        "symboltoken": str(request.symbol),
        "transactiontype": request.side.value,
        "exchange": map_exchange(exchange),
        "ordertype": ORDER_TYPES.get(request.order_type, request.order_type.value),
        "producttype": str(product_type).upper(),
        "duration": request.time_in_force.value,
        "price": format_decimal(request.price) if request.price else "0",
        "quantity": format_decimal(quantity),
        "squareoff": "0",
        "stoploss": "0",
    }


def map_order_response(raw: Any) -> BrokerOrderResponse:
    """
    SmartAPI answers {status: bool, message, data: {orderid}}.
    A false status becomes VendorRejected carrying the vendor message.
    """
    if not isinstance(raw, dict):
        raise MappingError("Angel order response is not a JSON object")

    message = raw.get("message") or ""
    if not raw.get("status"):
        raise VendorRejected(message or "Angel order rejected", payload=raw)

    data = raw.get("data") or {}
    order_id = data.get("orderid") if isinstance(data, dict) else None
    if not order_id:
        raise VendorRejected(f"Angel accepted the request but returned no order id: {message}", payload=raw)

    return BrokerOrderResponse(order_id=str(order_id), status="PLACED", message=message, raw=raw)


SESSION_ERROR_CODES = {"AG8001", "AG8002", "AG8003"}


def is_session_rejected(raw: Any) -> bool:
    """
    True when SmartAPI refused the JWT itself rather than the request.

    These answers come back as a JSON error body, sometimes with HTTP 401
    and sometimes with HTTP 200, e.g.
    {"status": false, "message": "Invalid Token", "errorcode": "AG8001"}.
    """
    if not isinstance(raw, dict) or raw.get("status"):
        return False
    code = str(raw.get("errorcode") or raw.get("errorCode") or "").upper()
    message = str(raw.get("message") or "").strip().lower()
    return code in SESSION_ERROR_CODES or message in ("invalid token", "token expired")


def _require_ok(raw: Any, fallback_message: str) -> None:
    if isinstance(raw, dict) and raw.get("status"):
        return
    if isinstance(raw, dict):
        raise VendorRejected(raw.get("message") or fallback_message, payload=raw)
    raise VendorRejected(fallback_message)


def map_order_details(raw: Any, order_id: str) -> BrokerOrderResponse:
    _require_ok(raw, f"Angel order lookup failed for {order_id}")

    data = raw.get("data") or {}
    return BrokerOrderResponse(
        order_id=str(data.get("orderid") or order_id),
        status=str(data.get("orderstatus") or data.get("status") or "UNKNOWN"),
        message=str(data.get("text") or raw.get("message") or ""),
        raw=raw,
    )


def map_cancel_response(raw: Any, order_id: str) -> None:
    _require_ok(raw, f"Angel cancel failed for {order_id}")


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

def normalize_position(raw: Mapping[str, Any]) -> BrokerPosition:
    """
    Map one SmartAPI position record into a BrokerPosition.

    Average price: avgnetprice -> netprice -> buyamount / buyqty -> 0
    Last price:    ltp -> close
    P&L:           pnl, or realised + unrealised when pnl is absent
    """
    if has_value(raw, "pnl"):
        pnl = to_decimal(raw.get("pnl"))
    else:
        pnl = to_decimal(raw.get("realised")) + to_decimal(raw.get("unrealised"))

    avg_price = first_nonzero(raw, "avgnetprice", "netprice")
    if not avg_price:
        avg_price = ratio(raw, "buyamount", "buyqty")

    return BrokerPosition(
        symbol=str(raw.get("tradingsymbol") or ""),
        security_id=str(raw.get("symboltoken") or ""),
        exchange=str(raw.get("exchange") or ""),
        product_type=str(raw.get("producttype") or ""),
        net_quantity=to_decimal(raw.get("netqty")),
        avg_price=avg_price,
        ltp=first_nonzero(raw, "ltp", "close"),
        pnl=pnl,
        buy_quantity=to_decimal(raw.get("buyqty")),
        sell_quantity=to_decimal(raw.get("sellqty")),
        raw=dict(raw),
    )


def normalize_positions(body: Any) -> List[BrokerPosition]:
    """
    SmartAPI wraps positions as {status, data: [...]}; `data` is null when
    the account has none. Closed (net 0) positions are kept.
    """
    if not isinstance(body, dict):
        return []
    records = body.get("data")
    if not isinstance(records, list):
        return []
    return [normalize_position(r) for r in records if isinstance(r, Mapping)]


# ---------------------------------------------------------------------------
# Historical data
# ---------------------------------------------------------------------------

def map_interval(interval: str) -> str:
    return INTERVALS.get((interval or "").upper(), DEFAULT_INTERVAL)


def format_vendor_time(value: datetime) -> str:
    """
    SmartAPI expects "yyyy-MM-dd HH:mm" wall-clock time in Asia/Kolkata.
    Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt_timezone.utc)
    return value.astimezone(IST).strftime(VENDOR_TIME_FORMAT)


def map_candle_request(symbol: str, interval: str, from_ts: datetime, to_ts: datetime,
                       exchange: str = "NSE") -> Dict[str, Any]:
    return {
        "exchange": exchange,
        "symboltoken": str(symbol),
        "interval": map_interval(interval),
        "fromdate": format_vendor_time(from_ts),
        "todate": format_vendor_time(to_ts),
    }


def _parse_candle(row: Iterable[Any]) -> Candle:
    ts, o, h, l, c, v = list(row)[:6]
    timestamp = datetime.fromisoformat(str(ts))
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=IST)
    return Candle(
        timestamp=timestamp,
        open=to_decimal(o),
        high=to_decimal(h),
        low=to_decimal(l),
        close=to_decimal(c),
        volume=int(to_decimal(v)),
    )


def map_candles(raw: Any) -> HistoricalDataResult:
    """
    Candles arrive as [timestamp, open, high, low, close, volume] rows.
    Malformed rows are skipped; a false vendor status yields a failed result.
    """
    if not isinstance(raw, dict):
        return HistoricalDataResult.failed("Angel historical response is not a JSON object")

    if not raw.get("status"):
        message = raw.get("message") or "unknown error"
        logger.warning(f"Angel historical data fetch failed: {message}")
        return HistoricalDataResult.failed(message)

    rows = raw.get("data")
    if not isinstance(rows, list):
        return HistoricalDataResult()

    candles: List[Candle] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 6:
            logger.warning(f"Skipping malformed candle row: {row!r}")
            continue
        try:
            candles.append(_parse_candle(row))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Failed to parse candle {row!r}: {exc}")
    return HistoricalDataResult(candles=candles)
