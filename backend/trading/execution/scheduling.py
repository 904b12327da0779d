# trading/execution/scheduling.py

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, List, Optional, Set

from django.db import DatabaseError, connections
from django.utils import timezone

from orders.models import Order, ScheduledJob, ScheduledOrder
from trading.brokers.config import get_float_setting, get_int_setting
from trading.execution.engine import DEFAULT_EXCHANGE, DEFAULT_PRODUCT_TYPE, OrderExecutionEngine
from trading.execution.exceptions import SchedulingError

logger = logging.getLogger(__name__)

JOB_GROUP = "orders"
JOB_KEY_PREFIX = "execOrder-"


def job_key_for(order_id: Any) -> str:
    return f"{JOB_KEY_PREFIX}{order_id}"


class JobStore:
    """
    Durable one-shot timers in the ScheduledJob table.

    A job is pending while `fired_at` is NULL. Claiming sets `fired_at`
    with a conditional UPDATE, so two workers never fire the same row.
    """

    def __init__(self, group: str = JOB_GROUP):
        self.group = group

    def register(self, job_key: str, order_id: Any, trigger_time: datetime) -> ScheduledJob:
        job, created = ScheduledJob.objects.update_or_create(
            job_key=job_key,
            defaults={
                "group": self.group,
                "order_id": order_id,
                "trigger_time": trigger_time,
                "fired_at": None,
            },
        )
        if not created:
            logger.info(f"Replaced existing job {job_key}")
        return job

    def remove(self, job_key: str) -> bool:
        deleted, _ = ScheduledJob.objects.filter(
            group=self.group, job_key=job_key, fired_at__isnull=True
        ).delete()
        return deleted > 0

    def pending(self) -> List[ScheduledJob]:
        return list(
            ScheduledJob.objects.filter(group=self.group, fired_at__isnull=True).order_by("trigger_time")
        )

    def due(self, now: datetime) -> List[ScheduledJob]:
        return list(
            ScheduledJob.objects.filter(
                group=self.group, fired_at__isnull=True, trigger_time__lte=now
            ).order_by("trigger_time")
        )

    def claim(self, job: ScheduledJob, now: datetime) -> bool:
        return bool(
            ScheduledJob.objects.filter(pk=job.pk, fired_at__isnull=True).update(fired_at=now)
        )

    def stranded(self) -> List[ScheduledJob]:
        """
        Claimed jobs that never reached the engine: the order is still
        PENDING and its schedule is still active. This is what a process
        killed between claim and fire leaves behind.
        """
        pending_orders = Order.objects.filter(status=Order.Status.PENDING).values("pk")
        live_keys = ScheduledOrder.objects.filter(active=True).values("job_key")
        return list(
            ScheduledJob.objects.filter(
                group=self.group,
                fired_at__isnull=False,
                order_id__in=pending_orders,
                job_key__in=live_keys,
            ).order_by("trigger_time")
        )


class OrderScheduler:
    """
    Registers orders for one-shot execution at a future instant and fires
    them when due.

    Job keys are "execOrder-<order id>" in group "orders": scheduling the
    same order twice replaces the earlier registration. Fired jobs run the
    engine with no trading-symbol override and meta
    {productType: <order's or INTRADAY>, exchange: NSE_EQ}.

    Jobs are claimed one at a time right before they fire. A job claimed by
    a process that died before firing it is picked up again by recover();
    the engine's PENDING -> EXECUTING claim keeps a re-fire from placing
    the order twice.
    """

    def __init__(self, engine: Optional[OrderExecutionEngine] = None, store: Optional[JobStore] = None):
        self.engine = engine or OrderExecutionEngine()
        self.store = store or JobStore()

    def schedule_once(self, order_id: Any, trigger_time: datetime) -> str:
        if trigger_time is None:
            raise SchedulingError("trigger_time is required")
        if timezone.is_naive(trigger_time):
            trigger_time = timezone.make_aware(trigger_time, timezone.get_current_timezone())

        job_key = job_key_for(order_id)
        try:
            self.store.register(job_key, order_id, trigger_time)
        except DatabaseError as exc:
            raise SchedulingError(f"Could not register job {job_key}: {exc}") from exc

        logger.info(f"Scheduled order {order_id} at {trigger_time.isoformat()} as {job_key}")
        return job_key

    def cancel(self, job_key: str) -> bool:
        removed = self.store.remove(job_key)
        if removed:
            logger.info(f"Cancelled job {job_key}")
        else:
            logger.info(f"No pending job {job_key} to cancel")
        return removed

    def fire(self, job: ScheduledJob):
        product_type = (
            Order.objects.filter(pk=job.order_id).values_list("product_type", flat=True).first()
            or DEFAULT_PRODUCT_TYPE
        )
        meta = {"productType": product_type, "exchange": DEFAULT_EXCHANGE}
        logger.info(f"Firing job {job.job_key}")
        try:
            return self.engine.execute(job.order_id, trading_symbol=None, meta=meta)
        finally:
            # The schedule stays active until the engine has seen the order
            ScheduledOrder.objects.filter(
                order_id=job.order_id, job_key=job.job_key, active=True
            ).update(active=False)

    def claim_and_fire(self, job: ScheduledJob, now: datetime) -> bool:
        """Fire `job` if this caller wins its claim. Returns whether it fired."""
        if not self.store.claim(job, now):
            return False
        self.fire(job)
        return True

    def recover(self) -> int:
        """
        Re-fire stranded jobs. Returns the number re-fired; each failure is
        logged and does not stop the others.
        """
        recovered = 0
        for job in self.store.stranded():
            logger.warning(f"Re-firing stranded job {job.job_key} (claimed at {job.fired_at.isoformat()})")
            recovered += 1
            try:
                self.fire(job)
            except Exception:
                logger.exception(f"Scheduled job {job.job_key} failed")
        return recovered

    def run_due(self, now: Optional[datetime] = None) -> int:
        """
        Recover stranded jobs, then fire every due job once, synchronously.
        Returns the number of jobs fired. A failing job is logged and does
        not stop the others.
        """
        now = now or timezone.now()
        fired = self.recover()
        for job in self.store.due(now):
            try:
                if self.claim_and_fire(job, now):
                    fired += 1
            except Exception:
                fired += 1
                logger.exception(f"Scheduled job {job.job_key} failed")
        return fired


class SchedulerWorker:
    """
    Polling loop that runs due jobs on its own pool, separate from the
    immediate-execution dispatcher.

    Each job is claimed inside the worker thread that fires it, so a
    backlog larger than the pool stays unclaimed in the table until a
    thread is free. Stranded jobs from an earlier process are re-fired
    when the loop starts.
    """

    def __init__(
            self,
            scheduler: Optional[OrderScheduler] = None,
            poll_seconds: Optional[float] = None,
            max_workers: Optional[int] = None,
    ):
        self.scheduler = scheduler or OrderScheduler()
        self.poll_seconds = poll_seconds or get_float_setting("SCHEDULER_POLL_SECONDS", 1.0)
        workers = max_workers or get_int_setting("SCHEDULER_WORKERS", 2)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="order-sched")
        self._inflight: Set[int] = set()
        self._lock = threading.Lock()
        self._stop = threading.Event()

    def _run(self, job: ScheduledJob, now: Optional[datetime]):
        # now=None re-fires an already claimed job
        try:
            if now is None:
                return self.scheduler.fire(job)
            if not self.scheduler.store.claim(job, now):
                return None
            return self.scheduler.fire(job)
        except Exception:
            logger.exception(f"Scheduled job {job.job_key} failed")
            raise
        finally:
            with self._lock:
                self._inflight.discard(job.pk)
            connections.close_all()

    def _submit(self, jobs: List[ScheduledJob], now: Optional[datetime]) -> List[Future]:
        futures = []
        for job in jobs:
            with self._lock:
                if job.pk in self._inflight:
                    continue
                self._inflight.add(job.pk)
            futures.append(self._executor.submit(self._run, job, now))
        return futures

    def recover(self) -> List[Future]:
        return self._submit(self.scheduler.store.stranded(), None)

    def tick(self, now: Optional[datetime] = None) -> List[Future]:
        now = now or timezone.now()
        return self._submit(self.scheduler.store.due(now), now)

    def run_forever(self) -> None:
        logger.info(f"Scheduler worker started (poll every {self.poll_seconds}s)")
        try:
            recovered = self.recover()
        except DatabaseError:
            logger.exception("Stranded job recovery failed")
        else:
            if recovered:
                logger.warning(f"Re-firing {len(recovered)} stranded job(s)")
        while not self._stop.is_set():
            try:
                self.tick()
            except DatabaseError:
                logger.exception("Scheduler poll failed; retrying on next tick")
            self._stop.wait(self.poll_seconds)
        logger.info("Scheduler worker stopped")

    def stop(self) -> None:
        self._stop.set()

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self.stop()
        self._executor.shutdown(wait=wait_for_pending)


_scheduler: Optional[OrderScheduler] = None


def get_scheduler() -> OrderScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = OrderScheduler()
    return _scheduler


def set_scheduler(scheduler: Optional[OrderScheduler]) -> None:
    global _scheduler
    _scheduler = scheduler
