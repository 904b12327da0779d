# trading/execution/tests/test_scheduling.py

from __future__ import annotations

from datetime import timedelta
from unittest import mock

from django.test import TestCase
from django.utils import timezone

from orders.factories import OrderFactory, ScheduledOrderFactory
from orders.models import Order, ScheduledJob
from trading.brokers.registry import BrokerRegistry
from trading.brokers.testing import FakeBrokerAdapter
from trading.execution.engine import OrderExecutionEngine
from trading.execution.exceptions import SchedulingError
from trading.execution.scheduling import JobStore, OrderScheduler, job_key_for


class OrderSchedulerTests(TestCase):
    def setUp(self):
        self.fake = FakeBrokerAdapter()
        self.engine = OrderExecutionEngine(registry=BrokerRegistry([self.fake]), publisher=lambda order: None)
        self.scheduler = OrderScheduler(engine=self.engine)
        self.now = timezone.now()
        self.order = OrderFactory(product_type="CNC")

    def test_job_key_and_group(self):
        key = self.scheduler.schedule_once(self.order.id, self.now + timedelta(minutes=5))

        self.assertEqual(key, f"execOrder-{self.order.id}")
        job = ScheduledJob.objects.get(job_key=key)
        self.assertEqual(job.group, "orders")
        self.assertEqual(job.order_id, self.order.id)
        self.assertIsNone(job.fired_at)

    def test_cancel_before_trigger_prevents_execution(self):
        trigger = self.now + timedelta(minutes=5)
        key = self.scheduler.schedule_once(self.order.id, trigger)

        self.assertTrue(self.scheduler.cancel(key))
        self.assertFalse(self.scheduler.cancel(key))

        with mock.patch.object(self.engine, "execute") as execute:
            fired = self.scheduler.run_due(now=trigger + timedelta(minutes=1))
        self.assertEqual(fired, 0)
        execute.assert_not_called()

    def test_rescheduling_replaces_previous_job(self):
        first = self.scheduler.schedule_once(self.order.id, self.now + timedelta(minutes=1))
        second = self.scheduler.schedule_once(self.order.id, self.now + timedelta(minutes=10))

        self.assertEqual(first, second)
        self.assertEqual(ScheduledJob.objects.filter(job_key=second).count(), 1)

        # The first trigger time no longer fires anything
        self.assertEqual(self.scheduler.run_due(now=self.now + timedelta(minutes=2)), 0)

        with mock.patch.object(self.engine, "execute", wraps=self.engine.execute) as execute:
            self.assertEqual(self.scheduler.run_due(now=self.now + timedelta(minutes=11)), 1)
            self.assertEqual(self.scheduler.run_due(now=self.now + timedelta(minutes=12)), 0)
        self.assertEqual(execute.call_count, 1)
        self.assertEqual(len(self.fake.placed), 1)

    def test_fired_job_uses_order_product_type_and_default_exchange(self):
        self.scheduler.schedule_once(self.order.id, self.now + timedelta(seconds=1))

        self.scheduler.run_due(now=self.now + timedelta(seconds=2))

        _, request = self.fake.placed[0]
        self.assertEqual(request.meta, {"productType": "CNC", "exchange": "NSE_EQ"})
        self.assertNotIn("tradingSymbol", request.meta)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PLACED)

    def test_not_yet_due_jobs_wait(self):
        self.scheduler.schedule_once(self.order.id, self.now + timedelta(minutes=5))
        self.assertEqual(self.scheduler.run_due(now=self.now), 0)
        self.assertEqual(len(JobStore().pending()), 1)

    def test_failing_job_does_not_stop_others(self):
        cancelled = OrderFactory(status=Order.Status.CANCELLED)
        trigger = self.now + timedelta(seconds=1)
        self.scheduler.schedule_once(cancelled.id, trigger)
        self.scheduler.schedule_once(self.order.id, trigger + timedelta(seconds=1))

        fired = self.scheduler.run_due(now=trigger + timedelta(minutes=1))

        self.assertEqual(fired, 2)
        self.assertEqual(len(self.fake.placed), 1)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PLACED)

    def test_firing_deactivates_schedule(self):
        scheduled = ScheduledOrderFactory(order=self.order, trigger_time=self.now + timedelta(seconds=1))
        scheduled.job_key = self.scheduler.schedule_once(self.order.id, scheduled.trigger_time)
        scheduled.save()

        self.scheduler.run_due(now=self.now + timedelta(seconds=5))

        scheduled.refresh_from_db()
        self.assertFalse(scheduled.active)

    def test_naive_trigger_is_made_aware(self):
        key = self.scheduler.schedule_once(self.order.id, (self.now + timedelta(minutes=1)).replace(tzinfo=None))
        self.assertTrue(timezone.is_aware(ScheduledJob.objects.get(job_key=key).trigger_time))

    def test_missing_trigger_is_scheduling_error(self):
        with self.assertRaises(SchedulingError):
            self.scheduler.schedule_once(self.order.id, None)

    def test_job_key_helper(self):
        self.assertEqual(job_key_for("abc"), "execOrder-abc")


class SchedulerRecoveryTests(TestCase):
    """A process that dies between claiming a job and firing it."""

    def setUp(self):
        self.fake = FakeBrokerAdapter()
        self.now = timezone.now()
        self.order = OrderFactory()
        self.scheduled = ScheduledOrderFactory(order=self.order, trigger_time=self.now + timedelta(seconds=1))
        self.scheduled.job_key = self._scheduler().schedule_once(self.order.id, self.scheduled.trigger_time)
        self.scheduled.save()

    def _scheduler(self) -> OrderScheduler:
        engine = OrderExecutionEngine(registry=BrokerRegistry([self.fake]), publisher=lambda order: None)
        return OrderScheduler(engine=engine)

    def _claim_without_firing(self):
        job = ScheduledJob.objects.get(job_key=self.scheduled.job_key)
        self.assertTrue(JobStore().claim(job, self.now + timedelta(seconds=2)))

    def test_claimed_job_is_fired_after_restart(self):
        self._claim_without_firing()

        fired = self._scheduler().run_due(now=self.now + timedelta(minutes=5))

        self.assertEqual(fired, 1)
        self.order.refresh_from_db()
        self.scheduled.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PLACED)
        self.assertFalse(self.scheduled.active)
        self.assertEqual(len(self.fake.placed), 1)

        self.assertEqual(self._scheduler().run_due(now=self.now + timedelta(minutes=6)), 0)
        self.assertEqual(len(self.fake.placed), 1)

    def test_cancelled_schedule_is_not_recovered(self):
        self._claim_without_firing()
        self.scheduled.active = False
        self.scheduled.save()

        self.assertEqual(self._scheduler().run_due(now=self.now + timedelta(minutes=5)), 0)
        self.assertEqual(self.fake.placed, [])

    def test_order_that_reached_the_engine_is_not_recovered(self):
        self._claim_without_firing()
        Order.objects.filter(pk=self.order.pk).update(status=Order.Status.EXECUTING)

        self.assertEqual(JobStore().stranded(), [])
        self.assertEqual(self._scheduler().run_due(now=self.now + timedelta(minutes=5)), 0)

    def test_failed_fire_deactivates_schedule(self):
        scheduler = self._scheduler()
        with mock.patch.object(scheduler.engine, "execute", side_effect=RuntimeError("boom")):
            self.assertEqual(scheduler.run_due(now=self.now + timedelta(seconds=5)), 1)

        self.scheduled.refresh_from_db()
        self.assertFalse(self.scheduled.active)
        self.assertEqual(JobStore().stranded(), [])
