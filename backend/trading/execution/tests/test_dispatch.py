# trading/execution/tests/test_dispatch.py

from __future__ import annotations

from datetime import timedelta

from django.test import TransactionTestCase
from django.utils import timezone

from orders.factories import OrderFactory, ScheduledOrderFactory
from orders.models import Order, ScheduledJob
from trading.brokers.registry import BrokerRegistry
from trading.brokers.testing import FakeBrokerAdapter
from trading.execution import service
from trading.execution.dispatch import OrderDispatcher
from trading.execution.engine import OrderExecutionEngine
from trading.execution.scheduling import JobStore, OrderScheduler, SchedulerWorker


class OrderDispatcherTests(TransactionTestCase):
    """Worker threads need committed rows, hence TransactionTestCase."""

    def setUp(self):
        self.fake = FakeBrokerAdapter(order_ids=["D-1", "D-2"])
        self.engine = OrderExecutionEngine(registry=BrokerRegistry([self.fake]), publisher=lambda order: None)
        self.dispatcher = OrderDispatcher(engine=self.engine, max_workers=1)

    def tearDown(self):
        self.dispatcher.shutdown()

    def test_submit_returns_future_with_terminal_status(self):
        order = OrderFactory()

        future = service.place_order_now(order, trading_symbol="SBIN", dispatcher=self.dispatcher)
        result = future.result(timeout=10)

        self.assertEqual(result.status, Order.Status.PLACED)
        self.assertEqual(result.broker_order_id, "D-1")
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PLACED)
        self.assertEqual(self.fake.placed[0][1].meta["tradingSymbol"], "SBIN")

    def test_double_submit_places_once(self):
        order = OrderFactory()

        first = self.dispatcher.submit(order.id)
        second = self.dispatcher.submit(order.id)
        self.dispatcher.drain(timeout=10)

        self.assertEqual(first.result().status, Order.Status.PLACED)
        self.assertIsNotNone(second.exception())
        self.assertEqual(len(self.fake.placed), 1)


class SchedulerWorkerTests(TransactionTestCase):
    def test_tick_runs_due_jobs_on_worker_pool(self):
        fake = FakeBrokerAdapter()
        engine = OrderExecutionEngine(registry=BrokerRegistry([fake]), publisher=lambda order: None)
        worker = SchedulerWorker(scheduler=OrderScheduler(engine=engine), poll_seconds=0.01, max_workers=1)
        order = OrderFactory()
        now = timezone.now()
        worker.scheduler.schedule_once(order.id, now + timedelta(seconds=1))

        try:
            self.assertEqual(worker.tick(now=now), [])
            futures = worker.tick(now=now + timedelta(seconds=2))
            self.assertEqual(len(futures), 1)
            self.assertEqual(futures[0].result(timeout=10).status, Order.Status.PLACED)
            self.assertEqual(worker.tick(now=now + timedelta(seconds=3)), [])
        finally:
            worker.shutdown()

    def test_worker_start_refires_job_claimed_by_dead_process(self):
        fake = FakeBrokerAdapter()
        engine = OrderExecutionEngine(registry=BrokerRegistry([fake]), publisher=lambda order: None)
        worker = SchedulerWorker(scheduler=OrderScheduler(engine=engine), poll_seconds=0.01, max_workers=1)
        order = OrderFactory()
        now = timezone.now()
        scheduled = ScheduledOrderFactory(order=order, trigger_time=now + timedelta(seconds=1))
        scheduled.job_key = worker.scheduler.schedule_once(order.id, scheduled.trigger_time)
        scheduled.save()
        JobStore().claim(ScheduledJob.objects.get(job_key=scheduled.job_key), now + timedelta(seconds=2))

        try:
            self.assertEqual(worker.tick(now=now + timedelta(seconds=3)), [])
            futures = worker.recover()
            self.assertEqual(len(futures), 1)
            self.assertEqual(futures[0].result(timeout=10).status, Order.Status.PLACED)
        finally:
            worker.shutdown()
        self.assertEqual(len(fake.placed), 1)
