from decimal import Decimal

from rest_framework import serializers

from .models import Order, ScheduledOrder


class OrderSerializer(serializers.ModelSerializer):
    broker_account = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "broker_account",
            "symbol",
            "side",
            "quantity",
            "price",
            "order_type",
            "product_type",
            "status",
            "broker_order_id",
            "executed_at",
            "failure_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderRequestSerializer(serializers.Serializer):
    """Inbound order: the persisted fields plus transient routing metadata."""

    broker_account = serializers.UUIDField()
    symbol = serializers.CharField(max_length=64)
    side = serializers.ChoiceField(choices=Order.Side.choices)
    quantity = serializers.DecimalField(max_digits=20, decimal_places=6, min_value=Decimal("0.000001"))
    price = serializers.DecimalField(max_digits=20, decimal_places=6, required=False, allow_null=True)
    order_type = serializers.ChoiceField(choices=Order.OrderType.choices, default=Order.OrderType.MARKET)
    product_type = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    trading_symbol = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    meta = serializers.DictField(required=False, default=dict)


class ScheduleOrderRequestSerializer(OrderRequestSerializer):
    trigger_time = serializers.DateTimeField()


class ScheduledOrderSerializer(serializers.ModelSerializer):
    order = OrderSerializer(read_only=True)

    class Meta:
        model = ScheduledOrder
        fields = ["id", "order", "trigger_time", "active", "job_key", "created_at"]
        read_only_fields = fields


class BrokerPositionSerializer(serializers.Serializer):
    """Serializes trading.brokers.types.BrokerPosition (a dataclass)."""

    symbol = serializers.CharField()
    security_id = serializers.CharField()
    exchange = serializers.CharField()
    product_type = serializers.CharField()
    net_quantity = serializers.DecimalField(max_digits=20, decimal_places=6)
    avg_price = serializers.DecimalField(max_digits=20, decimal_places=6)
    ltp = serializers.DecimalField(max_digits=20, decimal_places=6)
    pnl = serializers.DecimalField(max_digits=20, decimal_places=6)
    buy_quantity = serializers.DecimalField(max_digits=20, decimal_places=6)
    sell_quantity = serializers.DecimalField(max_digits=20, decimal_places=6)
    position_type = serializers.CharField()


class ClosePositionRequestSerializer(serializers.Serializer):
    symbol = serializers.CharField(max_length=64)
    security_id = serializers.CharField(max_length=64)
    exchange = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    product_type = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    net_quantity = serializers.DecimalField(max_digits=20, decimal_places=6)


class CandleSerializer(serializers.Serializer):
    timestamp = serializers.DateTimeField()
    open = serializers.DecimalField(max_digits=20, decimal_places=6)
    high = serializers.DecimalField(max_digits=20, decimal_places=6)
    low = serializers.DecimalField(max_digits=20, decimal_places=6)
    close = serializers.DecimalField(max_digits=20, decimal_places=6)
    volume = serializers.IntegerField()
