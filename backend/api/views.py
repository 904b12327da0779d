from datetime import timedelta

from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import permissions, status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import BrokerAccount
from accounts.serializers import BrokerAccountSerializer, LinkBrokerAccountSerializer
from orders.models import Order, ScheduledOrder
from orders.serializers import (
    BrokerPositionSerializer,
    CandleSerializer,
    ClosePositionRequestSerializer,
    OrderRequestSerializer,
    OrderSerializer,
    ScheduledOrderSerializer,
    ScheduleOrderRequestSerializer,
)
from trading.brokers.mapping import ZERO
from trading.brokers.types import BrokerPosition
from trading.execution import service


def _user_account(request, account_id) -> BrokerAccount:
    return get_object_or_404(BrokerAccount, pk=account_id, user=request.user)


def _create_order(request, data) -> Order:
    account = _user_account(request, data["broker_account"])
    return service.create_order(
        request.user,
        account,
        symbol=data["symbol"],
        side=data["side"],
        quantity=data["quantity"],
        order_type=data["order_type"],
        price=data.get("price"),
        product_type=data.get("product_type", ""),
    )


# ---------------------------------------------------------------------------
# Brokers
# ---------------------------------------------------------------------------

class AvailableBrokersView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(service.available_brokers())


class LinkBrokerView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        payload = LinkBrokerAccountSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        account = service.link_broker_account(
            request.user,
            payload.validated_data["broker_id"],
            payload.validated_data["credentials"],
            metadata=payload.validated_data.get("metadata"),
            nickname=payload.validated_data.get("nickname", ""),
        )
        return Response(BrokerAccountSerializer(account).data, status=status.HTTP_201_CREATED)


class LinkedBrokersView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(BrokerAccountSerializer(service.linked_accounts(request.user), many=True).data)


class BrokerPositionsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, account_id):
        account = _user_account(request, account_id)
        positions = service.list_positions(account)
        return Response(BrokerPositionSerializer(positions, many=True).data)


class ClosePositionView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, account_id):
        account = _user_account(request, account_id)
        payload = ClosePositionRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        position = BrokerPosition(
            symbol=data["symbol"],
            security_id=data["security_id"],
            exchange=data.get("exchange", ""),
            product_type=data.get("product_type", ""),
            net_quantity=data["net_quantity"],
            avg_price=ZERO,
            ltp=ZERO,
            pnl=ZERO,
            buy_quantity=ZERO,
            sell_quantity=ZERO,
        )
        response = service.close_position(account, position)
        return Response({
            "order_id": response.order_id,
            "status": response.status,
            "message": response.message,
        })


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class PlaceOrderView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        payload = OrderRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        order = _create_order(request, payload.validated_data)
        service.place_order_now(
            order,
            trading_symbol=payload.validated_data.get("trading_symbol") or None,
            meta=payload.validated_data.get("meta"),
        )
        return Response({"order_id": str(order.id), "status": order.status}, status=status.HTTP_202_ACCEPTED)


class ScheduleOrderView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        payload = ScheduleOrderRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        order = _create_order(request, payload.validated_data)
        scheduled = service.schedule_order(order, payload.validated_data["trigger_time"])
        return Response(ScheduledOrderSerializer(scheduled).data, status=status.HTTP_201_CREATED)


class CancelScheduleView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        scheduled = get_object_or_404(ScheduledOrder, pk=pk, order__user=request.user)
        cancelled = service.cancel_scheduled_order(scheduled)
        return Response({"cancelled": cancelled})


class OrdersView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(OrderSerializer(service.list_orders(request.user), many=True).data)


class OrderDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        order = get_object_or_404(Order, pk=pk, user=request.user)
        return Response(OrderSerializer(order).data)


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

class HistoryView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @staticmethod
    def _parse_ts(request, name, default):
        raw = request.GET.get(name)
        if not raw:
            return default
        value = parse_datetime(raw)
        if value is None:
            raise ValidationError({name: f"Invalid datetime: {raw}"})
        if timezone.is_naive(value):
            value = timezone.make_aware(value, timezone.get_current_timezone())
        return value

    def get(self, request, symbol: str):
        account_id = request.GET.get("account")
        if not account_id:
            raise ValidationError({"account": "This query parameter is required."})
        account = _user_account(request, account_id)

        now = timezone.now()
        to_ts = self._parse_ts(request, "to", now)
        from_ts = self._parse_ts(request, "from", to_ts - timedelta(days=1))
        result = service.get_history(account, symbol, request.GET.get("interval", "5M"), from_ts, to_ts)
        return Response({
            "symbol": symbol,
            "ok": result.ok,
            "error": result.error,
            "candles": CandleSerializer(result.candles, many=True).data,
        })
