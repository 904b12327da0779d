from __future__ import annotations

import json

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_datetime

from accounts.models import BrokerAccount
from trading.brokers.exceptions import BrokerError
from trading.execution import service
from trading.execution.engine import OrderExecutionEngine
from trading.execution.exceptions import ExecutionError


class Command(BaseCommand):
    help = "Create an order for a linked broker account and execute it now or schedule it."

    def add_arguments(self, parser):
        parser.add_argument("account_id", help="BrokerAccount id (UUID).")
        parser.add_argument("side", choices=["BUY", "SELL", "buy", "sell"])
        parser.add_argument("symbol", help="Vendor security id, e.g. 3045.")
        parser.add_argument("quantity")
        parser.add_argument("--order-type", default="MARKET")
        parser.add_argument("--price", default=None)
        parser.add_argument("--product-type", default="")
        parser.add_argument("--trading-symbol", default=None, help="Human-readable symbol, e.g. SBIN.")
        parser.add_argument("--exchange", default=None, help="Exchange segment, e.g. NSE_EQ.")
        parser.add_argument("--meta", default=None, help="Extra routing metadata as a JSON object.")
        parser.add_argument("--at", default=None, help="ISO datetime: schedule instead of executing now.")

    def handle(self, *args, **options):
        try:
            account = BrokerAccount.objects.select_related("user").get(pk=options["account_id"])
        except (BrokerAccount.DoesNotExist, ValueError):
            raise CommandError(f"BrokerAccount {options['account_id']} not found")

        meta = {}
        if options["meta"]:
            try:
                meta = json.loads(options["meta"])
            except json.JSONDecodeError as exc:
                raise CommandError(f"--meta is not valid JSON: {exc}")
        if options["exchange"]:
            meta["exchange"] = options["exchange"]

        try:
            order = service.create_order(
                account.user,
                account,
                symbol=options["symbol"],
                side=options["side"],
                quantity=options["quantity"],
                order_type=options["order_type"],
                price=options["price"],
                product_type=options["product_type"],
            )

            if options["at"]:
                trigger_time = parse_datetime(options["at"])
                if trigger_time is None:
                    raise CommandError(f"--at is not an ISO datetime: {options['at']}")
                scheduled = service.schedule_order(order, trigger_time)
                self.stdout.write(self.style.SUCCESS(
                    f"Order {order.id} scheduled for {scheduled.trigger_time.isoformat()} ({scheduled.job_key})"
                ))
                return

            # Synchronous here so the outcome can be printed
            result = OrderExecutionEngine().execute(order.id, trading_symbol=options["trading_symbol"], meta=meta)
        except (BrokerError, ExecutionError) as exc:
            raise CommandError(f"{type(exc).__name__}: {exc}")

        if result.placed:
            self.stdout.write(self.style.SUCCESS(f"Order {result.order_id} PLACED as {result.broker_order_id}"))
        else:
            self.stdout.write(self.style.ERROR(f"Order {result.order_id} FAILED: {result.error}"))
