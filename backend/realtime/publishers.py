"""
Helpers jobs/views call to push events into WS groups.
Use async_to_sync for sync contexts (engine workers, management commands, views).
"""
import time
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer


def order_group_name(user_id: Any) -> str:
    return f"orders.{user_id}"


def order_status_event(order, ts_ms: Optional[int] = None) -> Dict[str, Any]:
    return {
        "type": "order.status",
        "ts": ts_ms if ts_ms is not None else int(time.time() * 1000),
        "order_id": str(order.id),
        "status": order.status,
        "broker_order_id": order.broker_order_id or None,
        "failure_reason": order.failure_reason or None,
    }


def publish_order_status(order, *, ts_ms: Optional[int] = None) -> None:
    """
    Publish an order's current status to its owner's group 'orders.<user_id>'.
    """
    channel_layer = get_channel_layer()
    if not channel_layer:
        return
    async_to_sync(channel_layer.group_send)(
        order_group_name(order.user_id),
        order_status_event(order, ts_ms=ts_ms),
    )
