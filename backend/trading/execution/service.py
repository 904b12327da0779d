# trading/execution/service.py

from __future__ import annotations

import logging
from concurrent.futures import Future
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from accounts.models import BrokerAccount
from orders.models import Order, ScheduledOrder
from trading.brokers.exceptions import CredentialsInvalid
from trading.brokers.registry import BrokerRegistry, get_registry
from trading.brokers.types import (
    BrokerCapability,
    BrokerOrderRequest,
    BrokerOrderResponse,
    BrokerPosition,
    HistoricalDataResult,
    OrderSide,
    OrderType,
)
from trading.brokers.vault import CredentialVault, get_vault
from trading.execution.dispatch import OrderDispatcher, get_dispatcher
from trading.execution.engine import DEFAULT_EXCHANGE, DEFAULT_PRODUCT_TYPE
from trading.execution.exceptions import InvalidOrder, SchedulingError
from trading.execution.scheduling import OrderScheduler, get_scheduler

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def _parse_decimal(value: Any, field: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidOrder(f"{field} is not a number: {value!r}") from exc


def create_order(
        user,
        broker_account: BrokerAccount,
        *,
        symbol: str,
        side: str,
        quantity: Any,
        order_type: str = OrderType.MARKET.value,
        price: Any = None,
        product_type: str = "",
) -> Order:
    """
    Validate and persist a PENDING order. Nothing is sent to the broker.
    """
    if broker_account.user_id != user.pk:
        raise InvalidOrder("Broker account does not belong to this user")
    if not symbol:
        raise InvalidOrder("symbol is required")
    try:
        side_enum = OrderSide(str(side).upper())
        type_enum = OrderType(str(order_type).upper())
    except ValueError as exc:
        raise InvalidOrder(str(exc)) from exc

    qty = _parse_decimal(quantity, "quantity")
    if qty is None or qty <= 0:
        raise InvalidOrder("quantity must be positive")
    px = _parse_decimal(price, "price")
    if type_enum.requires_price and (px is None or px <= 0):
        raise InvalidOrder(f"price is required for {type_enum.value} orders")

    order = Order.objects.create(
        user=user,
        broker_account=broker_account,
        symbol=str(symbol),
        side=side_enum.value,
        quantity=qty,
        price=px,
        order_type=type_enum.value,
        product_type=product_type or "",
    )
    logger.info(f"Created order {order.id}: {order.side} {order.quantity} {order.symbol} ({order.order_type})")
    return order


def place_order_now(
        order: Order,
        trading_symbol: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        dispatcher: Optional[OrderDispatcher] = None,
) -> Future:
    """
    Hand the order to the async dispatcher. Returns at once; the Future
    resolves to an ExecutionResult.
    """
    return (dispatcher or get_dispatcher()).submit(order.id, trading_symbol=trading_symbol, meta=meta)


def schedule_order(
        order: Order,
        trigger_time: datetime,
        scheduler: Optional[OrderScheduler] = None,
) -> ScheduledOrder:
    if trigger_time is None:
        raise SchedulingError("trigger_time is required")
    if timezone.is_naive(trigger_time):
        trigger_time = timezone.make_aware(trigger_time, timezone.get_current_timezone())
    if trigger_time <= timezone.now():
        raise SchedulingError("trigger_time must be in the future")
    if order.status != Order.Status.PENDING:
        raise SchedulingError(f"Only PENDING orders can be scheduled (order is {order.status})")

    scheduler = scheduler or get_scheduler()
    with transaction.atomic():
        scheduled = ScheduledOrder.objects.create(order=order, trigger_time=trigger_time, active=True)
        scheduled.job_key = scheduler.schedule_once(order.id, trigger_time)
        scheduled.save(update_fields=["job_key", "updated_at"])
        # Older schedules for the same order were replaced in the job store
        ScheduledOrder.objects.filter(order=order, active=True).exclude(pk=scheduled.pk).update(active=False)
    return scheduled


def cancel_scheduled_order(
        scheduled_order: ScheduledOrder,
        scheduler: Optional[OrderScheduler] = None,
) -> bool:
    """
    Cancel a schedule before it fires. Returns True when a pending job was
    removed; the schedule goes inactive and the still-PENDING order becomes
    CANCELLED.
    """
    if not scheduled_order.active:
        return False

    scheduler = scheduler or get_scheduler()
    removed = bool(scheduled_order.job_key) and scheduler.cancel(scheduled_order.job_key)

    with transaction.atomic():
        scheduled_order.active = False
        scheduled_order.save(update_fields=["active", "updated_at"])
        if removed:
            Order.objects.filter(pk=scheduled_order.order_id, status=Order.Status.PENDING).update(
                status=Order.Status.CANCELLED,
                updated_at=timezone.now(),
            )

    if removed:
        logger.info(f"Cancelled schedule {scheduled_order.id} for order {scheduled_order.order_id}")
        order = Order.objects.get(pk=scheduled_order.order_id)
        from realtime.publishers import publish_order_status

        publish_order_status(order)
    return removed


def list_orders(user) -> QuerySet:
    return Order.objects.filter(user=user).select_related("broker_account")


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

def list_positions(broker_account: BrokerAccount, registry: Optional[BrokerRegistry] = None) -> List[BrokerPosition]:
    adapter = (registry or get_registry()).for_account(broker_account)
    adapter.require(BrokerCapability.GET_POSITIONS)
    return adapter.get_positions(str(broker_account.id))


def close_position(
        broker_account: BrokerAccount,
        position: BrokerPosition,
        registry: Optional[BrokerRegistry] = None,
) -> BrokerOrderResponse:
    """
    Flatten an open position with an opposite-side MARKET order for the
    full net quantity (LONG -> SELL, SHORT -> BUY).
    """
    if position.position_type == "FLAT":
        raise InvalidOrder(f"Position {position.symbol} is already flat")

    side = OrderSide.SELL if position.position_type == "LONG" else OrderSide.BUY
    product_type = position.product_type or DEFAULT_PRODUCT_TYPE
    request = BrokerOrderRequest(
        symbol=position.security_id,
        side=side,
        quantity=abs(position.net_quantity),
        order_type=OrderType.MARKET,
        product_type=product_type,
        meta={
            "tradingSymbol": position.symbol,
            "exchange": position.exchange or DEFAULT_EXCHANGE,
            "productType": product_type,
        },
    )

    adapter = (registry or get_registry()).for_account(broker_account)
    adapter.require(BrokerCapability.PLACE_ORDER)
    response = adapter.place_order(str(broker_account.id), request)
    logger.info(
        f"Close-position order for {position.symbol} on {broker_account.broker_id}: "
        f"{side.value} {request.quantity} -> {response.order_id}"
    )
    return response


# ---------------------------------------------------------------------------
# Brokers
# ---------------------------------------------------------------------------

def available_brokers(registry: Optional[BrokerRegistry] = None) -> Dict[str, List[str]]:
    return (registry or get_registry()).capabilities()


def link_broker_account(
        user,
        broker_id: str,
        credentials: Mapping[str, Any],
        metadata: Optional[Mapping[str, Any]] = None,
        nickname: str = "",
        registry: Optional[BrokerRegistry] = None,
        vault: Optional[CredentialVault] = None,
) -> BrokerAccount:
    """
    Validate credentials against the vendor, then store them encrypted.
    """
    adapter = (registry or get_registry()).get(broker_id)
    if not adapter.validate_credentials(credentials):
        raise CredentialsInvalid(f"Credentials rejected by broker: {broker_id}")

    account = BrokerAccount.objects.create(
        user=user,
        broker_id=broker_id,
        nickname=nickname or "",
        encrypted_credentials=(vault or get_vault()).encrypt(credentials),
        metadata=dict(metadata or {}),
    )
    logger.info(f"Linked {broker_id} account {account.id} for user {user.pk}")
    return account


def linked_accounts(user) -> QuerySet:
    return BrokerAccount.objects.filter(user=user, is_active=True)


def get_history(
        broker_account: BrokerAccount,
        symbol: str,
        interval: str,
        from_ts: datetime,
        to_ts: datetime,
        registry: Optional[BrokerRegistry] = None,
) -> HistoricalDataResult:
    adapter = (registry or get_registry()).for_account(broker_account)
    adapter.require(BrokerCapability.HISTORICAL_DATA)
    return adapter.get_historical_data(str(broker_account.id), symbol, interval, from_ts, to_ts)
