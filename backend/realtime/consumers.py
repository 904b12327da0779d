import json
from typing import Any, Dict

from channels.generic.websocket import AsyncWebsocketConsumer

from .publishers import order_group_name


class OrderStatusConsumer(AsyncWebsocketConsumer):
    """
    Streams status changes for the connected user's orders.
    Joins the group 'orders.<user_id>'; anonymous connections are refused.
    """

    group_name = ""

    async def connect(self) -> None:
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close()
            return
        self.group_name = order_group_name(user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.send_json({"ok": True, "msg": "orders connected"})

    async def disconnect(self, code: int) -> None:
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def send_json(self, data: Dict[str, Any]) -> None:
        await self.send(text_data=json.dumps(data))

    async def order_status(self, event: Dict[str, Any]) -> None:
        """
        Handles messages sent with type='order.status'
        """
        await self.send_json({key: value for key, value in event.items() if key != "type"})
