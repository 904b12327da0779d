# Create your models here.

from django.conf import settings
from django.db import models

from accounts.models import BrokerAccount, TimeUUIDModel


class Order(TimeUUIDModel):
    """
    One order routed to a broker.

    Status only moves forward: PENDING -> EXECUTING -> PLACED | FAILED, or
    PENDING -> CANCELLED when its schedule is cancelled before firing.
    The execution engine is the only writer of PLACED / FAILED.
    """

    class Side(models.TextChoices):
        BUY = "BUY", "Buy"
        SELL = "SELL", "Sell"

    class OrderType(models.TextChoices):
        MARKET = "MARKET", "Market"
        LIMIT = "LIMIT", "Limit"
        STOP_LOSS = "STOP_LOSS", "Stop loss (limit)"
        STOP_LOSS_MARKET = "STOP_LOSS_MARKET", "Stop loss (market)"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        EXECUTING = "EXECUTING", "Executing"
        PLACED = "PLACED", "Placed"
        FAILED = "FAILED", "Failed"
        CANCELLED = "CANCELLED", "Cancelled"

    TERMINAL_STATUSES = (Status.PLACED, Status.FAILED, Status.CANCELLED)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="orders")
    broker_account = models.ForeignKey(BrokerAccount, on_delete=models.CASCADE, related_name="orders")

    symbol = models.CharField(max_length=64)  # vendor security id, e.g. "3045"
    side = models.CharField(max_length=4, choices=Side.choices)
    quantity = models.DecimalField(max_digits=20, decimal_places=6)
    price = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True)
    order_type = models.CharField(max_length=20, choices=OrderType.choices, default=OrderType.MARKET)
    product_type = models.CharField(max_length=20, blank=True, default="")  # INTRADAY / CNC / MARGIN

    status = models.CharField(max_length=12, choices=Status.choices, default=Status.PENDING)
    broker_order_id = models.CharField(max_length=64, blank=True, default="")
    executed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=["user", "created_at"], name="idx_order_user_created"),
            models.Index(fields=["broker_account", "status"], name="idx_order_account_status"),
        ]
        ordering = ["-created_at"]

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def __str__(self):
        return f"{self.side} {self.quantity} {self.symbol} via {self.broker_account.broker_id} [{self.status}]"


class ScheduledOrder(TimeUUIDModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="schedules")
    trigger_time = models.DateTimeField()
    active = models.BooleanField(default=True)
    job_key = models.CharField(max_length=128, blank=True, default="")  # set once the scheduler accepts it

    class Meta:
        indexes = [
            models.Index(fields=["active", "trigger_time"], name="idx_sched_active_trigger"),
        ]

    def __str__(self):
        state = "active" if self.active else "inactive"
        return f"{self.order_id} @ {self.trigger_time:%Y-%m-%d %H:%M:%S} ({state})"


class ScheduledJob(models.Model):
    """
    Durable one-shot timer. A worker claims the row by setting `fired_at`
    right before firing it; a claimed row whose order is still PENDING
    after a restart is re-fired by the scheduler's recovery pass.
    """

    job_key = models.CharField(max_length=128, unique=True)
    group = models.CharField(max_length=32, default="orders")
    order_id = models.UUIDField()
    trigger_time = models.DateTimeField()
    fired_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["group", "fired_at", "trigger_time"], name="idx_job_group_fired_trigger"),
        ]

    def __str__(self):
        return f"{self.group}/{self.job_key} @ {self.trigger_time:%Y-%m-%d %H:%M:%S}"
