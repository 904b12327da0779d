# trading/brokers/dhan/mappers.py

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping

from trading.brokers.exceptions import CredentialsMissing, MappingError, VendorRejected
from trading.brokers.mapping import ZERO, first_nonzero, format_decimal, positive_quantity, ratio, to_decimal
from trading.brokers.types import BrokerOrderRequest, BrokerOrderResponse, BrokerPosition

DEFAULT_EXCHANGE_SEGMENT = "NSE_EQ"
DEFAULT_PRODUCT_TYPE = "INTRADAY"


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

@dataclass
class DhanCredentials:
    client_id: str
    access_token: str

    def __repr__(self) -> str:
        return f"DhanCredentials(client_id={self.client_id!r})"


def map_credentials(raw: Mapping[str, Any]) -> DhanCredentials:
    if not isinstance(raw, Mapping):
        raise CredentialsMissing("Dhan credentials must be a JSON object")

    client_id = str(raw.get("clientId") or "").strip()
    access_token = str(raw.get("accessToken") or "").strip()
    missing = [name for name, value in (("clientId", client_id), ("accessToken", access_token)) if not value]
    if missing:
        raise CredentialsMissing(f"Dhan credentials missing fields: {', '.join(missing)}")
    return DhanCredentials(client_id=client_id, access_token=access_token)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def _whole_quantity(quantity: Decimal) -> int:
    if quantity != quantity.to_integral_value():
        raise MappingError(f"Dhan requires a whole-number quantity, got {quantity}")
    return int(quantity)


def map_order_request(request: BrokerOrderRequest, client_id: str) -> Dict[str, Any]:
    """
    Map a BrokerOrderRequest into a Dhan /v2/orders payload.

    Exchange segment and product type come from metadata with defaults
    NSE_EQ / INTRADAY. Price is only sent when positive, as an exact
    decimal string so no binary-float rounding reaches the exchange.
    """
    meta = request.meta or {}
    quantity = positive_quantity(request.quantity)

    payload: Dict[str, Any] = {
        "dhanClientId": client_id,
        "transactionType": request.side.value,
        "exchangeSegment": meta.get("exchange") or DEFAULT_EXCHANGE_SEGMENT,
        "productType": meta.get("productType") or request.product_type or DEFAULT_PRODUCT_TYPE,
        "orderType": request.order_type.value,
        "validity": request.time_in_force.value,
        "securityId": str(request.symbol),
        "quantity": _whole_quantity(quantity),
    }
    if request.client_order_id:
        payload["correlationId"] = request.client_order_id.replace("-", "")[:25]

    price = to_decimal(request.price)
    if price > ZERO:
        payload["price"] = format_decimal(price)
    return payload


def _raise_if_error(raw: Any, fallback: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise MappingError(f"{fallback}: response is not a JSON object")
    if raw.get("errorCode") or raw.get("errorMessage"):
        code = raw.get("errorCode") or ""
        message = raw.get("errorMessage") or fallback
        raise VendorRejected(f"{code} {message}".strip(), payload=raw)
    return raw


def map_order_response(raw: Any) -> BrokerOrderResponse:
    """
    Dhan answers {orderId, orderStatus} on success and
    {errorType, errorCode, errorMessage} on failure.
    """
    raw = _raise_if_error(raw, "Dhan order rejected")
    order_id = raw.get("orderId")
    status = str(raw.get("orderStatus") or "")
    if not order_id or status.upper() == "REJECTED":
        raise VendorRejected(raw.get("omsErrorDescription") or f"Dhan order not accepted (status={status or 'n/a'})", payload=raw)
    return BrokerOrderResponse(order_id=str(order_id), status=status or "PLACED", message="Placed via Dhan", raw=raw)


def map_order_status(raw: Any, order_id: str) -> BrokerOrderResponse:
    # The single-order endpoint sometimes answers with a one-element list
    if isinstance(raw, list):
        raw = raw[0] if raw else {}
    raw = _raise_if_error(raw, f"Dhan order lookup failed for {order_id}")
    return BrokerOrderResponse(
        order_id=str(raw.get("orderId") or order_id),
        status=str(raw.get("orderStatus") or "UNKNOWN"),
        message=str(raw.get("omsErrorDescription") or ""),
        raw=raw,
    )


def map_cancel_response(raw: Any, order_id: str) -> None:
    _raise_if_error(raw, f"Dhan cancel failed for {order_id}")


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

def average_price(raw: Mapping[str, Any], net_quantity: Decimal) -> Decimal:
    """
    Side-aware average price: buyAvg for longs / sellAvg for shorts, then
    avgPrice, then dayBuyValue / dayBuyQty, else 0.
    """
    primary = "buyAvg" if net_quantity > ZERO else "sellAvg"
    price = first_nonzero(raw, primary, "avgPrice")
    if price:
        return price
    return ratio(raw, "dayBuyValue", "dayBuyQty")


def normalize_position(raw: Mapping[str, Any]) -> BrokerPosition:
    net_quantity = to_decimal(raw.get("netQty"))
    return BrokerPosition(
        symbol=str(raw.get("tradingSymbol") or "Unknown"),
        security_id=str(raw.get("securityId") or ""),
        exchange=str(raw.get("exchangeSegment") or ""),
        product_type=str(raw.get("productType") or DEFAULT_PRODUCT_TYPE),
        net_quantity=net_quantity,
        avg_price=average_price(raw, net_quantity),
        ltp=first_nonzero(raw, "lastTradedPrice", "ltp"),
        pnl=to_decimal(raw.get("realizedProfit")) + to_decimal(raw.get("unrealizedProfit")),
        buy_quantity=to_decimal(raw.get("buyQty")),
        sell_quantity=to_decimal(raw.get("sellQty")),
        raw=dict(raw),
    )


def normalize_positions(body: Any) -> List[BrokerPosition]:
    """
    Dhan returns a bare JSON array. Closed positions (netQty == 0) are
    dropped; Dhan keeps them in the list for the rest of the day.
    """
    if not isinstance(body, list):
        return []
    positions: List[BrokerPosition] = []
    for record in body:
        if not isinstance(record, Mapping):
            continue
        position = normalize_position(record)
        if position.net_quantity == ZERO:
            continue
        positions.append(position)
    return positions
