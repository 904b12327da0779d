# trading/execution/tests/test_service.py

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from accounts.factories import BrokerAccountFactory, UserFactory
from accounts.models import BrokerAccount
from orders.factories import OrderFactory
from orders.models import Order, ScheduledJob
from trading.brokers.exceptions import CredentialsInvalid, UnsupportedOperation
from trading.brokers.registry import BrokerRegistry
from trading.brokers.testing import FakeBrokerAdapter, InMemoryVault, make_simple_fake_position
from trading.brokers.types import BrokerCapability, Candle, OrderSide, OrderType
from trading.execution import service
from trading.execution.engine import OrderExecutionEngine
from trading.execution.exceptions import InvalidOrder, SchedulingError
from trading.execution.scheduling import OrderScheduler


class NoHistoryAdapter(FakeBrokerAdapter):
    broker_id = "nohistory"
    capabilities = frozenset({BrokerCapability.PLACE_ORDER})


class CreateOrderTests(TestCase):
    def setUp(self):
        self.account = BrokerAccountFactory()
        self.user = self.account.user

    def test_creates_pending_order(self):
        order = service.create_order(self.user, self.account, symbol="3045", side="buy", quantity="10")

        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.side, "BUY")
        self.assertEqual(order.quantity, Decimal("10"))
        self.assertEqual(order.order_type, "MARKET")

    def test_validation(self):
        cases = [
            dict(symbol="3045", side="BUY", quantity="0"),
            dict(symbol="3045", side="HOLD", quantity="1"),
            dict(symbol="3045", side="BUY", quantity="abc"),
            dict(symbol="", side="BUY", quantity="1"),
            dict(symbol="3045", side="BUY", quantity="1", order_type="LIMIT"),
            dict(symbol="3045", side="BUY", quantity="1", order_type="ICEBERG"),
        ]
        for fields in cases:
            with self.subTest(fields=fields):
                with self.assertRaises(InvalidOrder):
                    service.create_order(self.user, self.account, **fields)
        self.assertEqual(Order.objects.count(), 0)

    def test_account_must_belong_to_user(self):
        with self.assertRaises(InvalidOrder):
            service.create_order(UserFactory(), self.account, symbol="3045", side="BUY", quantity="1")

    def test_limit_order_with_price(self):
        order = service.create_order(
            self.user, self.account, symbol="3045", side="SELL", quantity="5",
            order_type="LIMIT", price="601.25", product_type="CNC",
        )
        self.assertEqual(order.price, Decimal("601.25"))


class ScheduleServiceTests(TestCase):
    def setUp(self):
        self.fake = FakeBrokerAdapter()
        engine = OrderExecutionEngine(registry=BrokerRegistry([self.fake]), publisher=lambda order: None)
        self.scheduler = OrderScheduler(engine=engine)
        self.order = OrderFactory()

    def test_schedule_then_cancel(self):
        scheduled = service.schedule_order(self.order, timezone.now() + timedelta(minutes=5), scheduler=self.scheduler)

        self.assertTrue(scheduled.active)
        self.assertEqual(scheduled.job_key, f"execOrder-{self.order.id}")

        self.assertTrue(service.cancel_scheduled_order(scheduled, scheduler=self.scheduler))

        scheduled.refresh_from_db()
        self.order.refresh_from_db()
        self.assertFalse(scheduled.active)
        self.assertEqual(self.order.status, Order.Status.CANCELLED)
        self.assertFalse(ScheduledJob.objects.exists())
        self.assertFalse(service.cancel_scheduled_order(scheduled, scheduler=self.scheduler))

        self.assertEqual(self.scheduler.run_due(now=timezone.now() + timedelta(hours=1)), 0)
        self.assertEqual(self.fake.placed, [])

    def test_trigger_must_be_in_future(self):
        with self.assertRaises(SchedulingError):
            service.schedule_order(self.order, timezone.now() - timedelta(seconds=1), scheduler=self.scheduler)

    def test_only_pending_orders(self):
        placed = OrderFactory(status=Order.Status.PLACED)
        with self.assertRaises(SchedulingError):
            service.schedule_order(placed, timezone.now() + timedelta(minutes=1), scheduler=self.scheduler)

    def test_rescheduling_deactivates_previous_schedule(self):
        first = service.schedule_order(self.order, timezone.now() + timedelta(minutes=5), scheduler=self.scheduler)
        second = service.schedule_order(self.order, timezone.now() + timedelta(minutes=9), scheduler=self.scheduler)

        first.refresh_from_db()
        self.assertFalse(first.active)
        self.assertTrue(second.active)
        self.assertEqual(ScheduledJob.objects.count(), 1)


class PositionServiceTests(TestCase):
    def setUp(self):
        self.fake = FakeBrokerAdapter()
        self.registry = BrokerRegistry([self.fake, NoHistoryAdapter()])
        self.account = BrokerAccountFactory()

    def test_close_long_position_sells_net_quantity(self):
        position = make_simple_fake_position(net_quantity="10")

        response = service.close_position(self.account, position, registry=self.registry)

        _, request = self.fake.placed[0]
        self.assertEqual(request.side, OrderSide.SELL)
        self.assertEqual(request.quantity, Decimal("10"))
        self.assertEqual(request.order_type, OrderType.MARKET)
        self.assertEqual(request.symbol, "2885")
        self.assertEqual(request.meta["tradingSymbol"], "RELIANCE-EQ")
        self.assertEqual(request.meta["exchange"], "NSE_EQ")
        self.assertEqual(response.order_id, "FAKE-1")

    def test_close_short_position_buys(self):
        service.close_position(self.account, make_simple_fake_position(net_quantity="-3"), registry=self.registry)

        _, request = self.fake.placed[0]
        self.assertEqual(request.side, OrderSide.BUY)
        self.assertEqual(request.quantity, Decimal("3"))

    def test_flat_position_cannot_be_closed(self):
        with self.assertRaises(InvalidOrder):
            service.close_position(self.account, make_simple_fake_position(net_quantity="0"), registry=self.registry)

    def test_list_positions(self):
        self.fake.positions = [make_simple_fake_position()]
        positions = service.list_positions(self.account, registry=self.registry)
        self.assertEqual([p.symbol for p in positions], ["RELIANCE-EQ"])

    def test_history(self):
        now = timezone.now()
        self.fake.candles = [
            Candle(now - timedelta(minutes=5), Decimal("1"), Decimal("2"), Decimal("0.5"), Decimal("1.5"), 100)
        ]
        result = service.get_history(self.account, "2885", "5M", now - timedelta(hours=1), now, registry=self.registry)
        self.assertTrue(result.ok)
        self.assertEqual(len(result.candles), 1)

        self.fake.history_error = "Invalid symbol token"
        failed = service.get_history(self.account, "2885", "5M", now - timedelta(hours=1), now, registry=self.registry)
        self.assertFalse(failed.ok)
        self.assertEqual(failed.error, "Invalid symbol token")

    def test_history_requires_capability(self):
        account = BrokerAccountFactory(broker_id="nohistory")
        now = timezone.now()
        with self.assertRaises(UnsupportedOperation):
            service.get_history(account, "2885", "5M", now, now, registry=self.registry)


class BrokerLinkServiceTests(TestCase):
    def setUp(self):
        self.user = UserFactory()
        self.vault = InMemoryVault()

    def test_link_valid_credentials(self):
        registry = BrokerRegistry([FakeBrokerAdapter()])

        account = service.link_broker_account(
            self.user, "fake", {"token": "t"}, metadata={"clientCode": "A1"},
            registry=registry, vault=self.vault,
        )

        self.assertEqual(account.broker_id, "fake")
        self.assertEqual(account.encrypted_credentials, "plain:1")
        self.assertEqual(account.metadata, {"clientCode": "A1"})
        self.assertEqual(self.vault.encrypted, [{"token": "t"}])

    def test_invalid_credentials_are_not_stored(self):
        registry = BrokerRegistry([FakeBrokerAdapter(valid_credentials=False)])

        with self.assertRaises(CredentialsInvalid):
            service.link_broker_account(self.user, "fake", {"token": "t"}, registry=registry, vault=self.vault)
        self.assertFalse(BrokerAccount.objects.exists())
        self.assertEqual(self.vault.encrypted, [])

    def test_available_brokers(self):
        caps = service.available_brokers(registry=BrokerRegistry([FakeBrokerAdapter()]))
        self.assertIn("GET_POSITIONS", caps["fake"])
