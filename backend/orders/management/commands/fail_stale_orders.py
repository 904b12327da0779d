from __future__ import annotations

from datetime import timedelta

from django.core.management.base import BaseCommand

from trading.brokers.config import get_int_setting
from trading.execution.engine import OrderExecutionEngine


class Command(BaseCommand):
    help = "Mark orders stuck in EXECUTING (worker died mid-flight) as FAILED for manual reconciliation."

    def add_arguments(self, parser):
        parser.add_argument(
            "--minutes",
            type=int,
            default=None,
            help="Age of the last status change before an EXECUTING order counts as stale "
                 "(default: settings.STALE_EXECUTION_MINUTES or 15).",
        )

    def handle(self, *args, **options):
        minutes = options["minutes"] or get_int_setting("STALE_EXECUTION_MINUTES", 15)
        failed = OrderExecutionEngine().fail_stale(timedelta(minutes=minutes))

        for order in failed:
            self.stdout.write(
                f"- {order.id} {order.side} {order.quantity} {order.symbol} on {order.broker_account.broker_id}"
            )
        self.stdout.write(self.style.SUCCESS(f"Marked {len(failed)} stale order(s) as FAILED."))
