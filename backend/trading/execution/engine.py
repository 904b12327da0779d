# trading/execution/engine.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from django.utils import timezone

from orders.models import Order
from trading.brokers.exceptions import BrokerError
from trading.brokers.registry import BrokerRegistry, get_registry
from trading.brokers.types import (
    BrokerCapability,
    BrokerOrderRequest,
    BrokerOrderResponse,
    OrderSide,
    OrderType,
)
from trading.execution.exceptions import OrderAlreadyExecuting, OrderNotExecutable

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_TYPE = "INTRADAY"
DEFAULT_EXCHANGE = "NSE_EQ"
STALE_EXECUTION_REASON = "Execution interrupted before the broker answered; check the broker order book"


@dataclass
class ExecutionResult:
    order_id: str
    status: str
    broker_order_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def placed(self) -> bool:
        return self.status == Order.Status.PLACED


def _default_publisher(order: Order) -> None:
    from realtime.publishers import publish_order_status  # local import keeps channels optional here

    publish_order_status(order)


class OrderExecutionEngine:
    """
    Executes one order against its broker, at most once.

    Flow for execute():
      1) claim: atomic PENDING -> EXECUTING update; losers get
         OrderAlreadyExecuting / OrderNotExecutable and write nothing
      2) resolve the adapter for the order's broker account
      3) build a BrokerOrderRequest from the order + transient metadata
      4) place it, then record PLACED or FAILED in a single save

    Broker errors end as FAILED with the reason kept on the order. Anything
    else is also recorded as FAILED and then re-raised. There is no retry.

    An order whose worker died after the claim stays EXECUTING; the vendor
    may or may not have it. fail_stale() moves such rows to FAILED so an
    operator can reconcile them against the broker's order book.
    """

    def __init__(
            self,
            registry: Optional[BrokerRegistry] = None,
            publisher: Optional[Callable[[Order], None]] = None,
    ):
        self._registry = registry
        self.publisher = publisher or _default_publisher

    @property
    def registry(self) -> BrokerRegistry:
        return self._registry or get_registry()

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------
    def claim(self, order_id: Any) -> Order:
        claimed = Order.objects.filter(pk=order_id, status=Order.Status.PENDING).update(
            status=Order.Status.EXECUTING,
            updated_at=timezone.now(),
        )
        if claimed:
            return Order.objects.select_related("broker_account").get(pk=order_id)

        order = Order.objects.get(pk=order_id)  # DoesNotExist propagates
        if order.status == Order.Status.EXECUTING:
            raise OrderAlreadyExecuting(f"Order {order_id} is already executing")
        raise OrderNotExecutable(f"Order {order_id} is {order.status} and cannot be executed")

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------
    @staticmethod
    def build_request(
            order: Order,
            trading_symbol: Optional[str] = None,
            meta: Optional[Dict[str, Any]] = None,
    ) -> BrokerOrderRequest:
        merged: Dict[str, Any] = dict(meta or {})
        if trading_symbol:
            merged["tradingSymbol"] = trading_symbol

        product_type = order.product_type or merged.get("productType") or DEFAULT_PRODUCT_TYPE
        merged["productType"] = product_type
        merged["exchange"] = merged.get("exchange") or DEFAULT_EXCHANGE

        return BrokerOrderRequest(
            symbol=order.symbol,
            side=OrderSide(order.side),
            quantity=order.quantity,
            order_type=OrderType(order.order_type),
            price=order.price,
            product_type=product_type,
            client_order_id=str(order.id),
            meta=merged,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def execute(
            self,
            order_id: Any,
            trading_symbol: Optional[str] = None,
            meta: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        order = self.claim(order_id)
        account = order.broker_account

        try:
            adapter = self.registry.for_account(account)
            adapter.require(BrokerCapability.PLACE_ORDER)
            request = self.build_request(order, trading_symbol, meta)
            response = adapter.place_order(str(account.id), request)
        except BrokerError as exc:
            return self._mark_failed(order, str(exc) or type(exc).__name__)
        except Exception as exc:
            self._mark_failed(order, f"{type(exc).__name__}: {exc}")
            raise

        if not response.accepted:
            return self._mark_failed(order, response.message or f"Broker returned no order id (status={response.status})")
        return self._mark_placed(order, response)

    def _mark_placed(self, order: Order, response: BrokerOrderResponse) -> ExecutionResult:
        order.status = Order.Status.PLACED
        order.broker_order_id = str(response.order_id)
        order.executed_at = timezone.now()
        order.failure_reason = ""
        order.save(update_fields=["status", "broker_order_id", "executed_at", "failure_reason", "updated_at"])
        logger.info(
            f"Order {order.id} placed on {order.broker_account.broker_id}: "
            f"{order.side} {order.quantity} {order.symbol} -> {order.broker_order_id}"
        )
        self._publish(order)
        return ExecutionResult(order_id=str(order.id), status=order.status, broker_order_id=order.broker_order_id)

    def _mark_failed(self, order: Order, reason: str) -> ExecutionResult:
        order.status = Order.Status.FAILED
        order.failure_reason = reason
        order.save(update_fields=["status", "failure_reason", "updated_at"])
        logger.warning(f"Order {order.id} failed on {order.broker_account.broker_id}: {reason}")
        self._publish(order)
        return ExecutionResult(order_id=str(order.id), status=order.status, error=reason)

    def _publish(self, order: Order) -> None:
        # The order row is already committed; a push failure must not undo it.
        try:
            self.publisher(order)
        except Exception:
            logger.exception(f"Failed to publish status for order {order.id}")

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    def fail_stale(self, older_than: timedelta, now: Optional[datetime] = None) -> List[Order]:
        """
        Mark orders stuck in EXECUTING for longer than `older_than` as
        FAILED. Each row is moved with its own conditional update, so an
        execution that finishes meanwhile keeps its own outcome.
        """
        cutoff = (now or timezone.now()) - older_than
        failed: List[Order] = []
        stale = Order.objects.filter(status=Order.Status.EXECUTING, updated_at__lt=cutoff).select_related(
            "broker_account"
        )
        for order in stale:
            moved = Order.objects.filter(pk=order.pk, status=Order.Status.EXECUTING).update(
                status=Order.Status.FAILED,
                failure_reason=STALE_EXECUTION_REASON,
                updated_at=timezone.now(),
            )
            if not moved:
                continue
            order.refresh_from_db()
            logger.warning(f"Order {order.id} left EXECUTING before {cutoff.isoformat()}; marked FAILED")
            self._publish(order)
            failed.append(order)
        return failed
