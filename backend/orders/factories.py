import factory
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone
from factory.django import DjangoModelFactory

from accounts.factories import BrokerAccountFactory
from .models import Order, ScheduledOrder


class OrderFactory(DjangoModelFactory):
    class Meta:
        model = Order

    broker_account = factory.SubFactory(BrokerAccountFactory)
    user = factory.SelfAttribute("broker_account.user")
    symbol = "3045"
    side = Order.Side.BUY
    quantity = Decimal("10")
    price = None
    order_type = Order.OrderType.MARKET
    product_type = "INTRADAY"
    status = Order.Status.PENDING


class ScheduledOrderFactory(DjangoModelFactory):
    class Meta:
        model = ScheduledOrder

    order = factory.SubFactory(OrderFactory)
    trigger_time = factory.LazyFunction(lambda: timezone.now() + timedelta(minutes=5))
    active = True
    job_key = ""
