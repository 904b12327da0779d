from __future__ import annotations

from django.core.management.base import BaseCommand

from trading.brokers.registry import get_registry


class Command(BaseCommand):
    help = "List enabled broker adapters and the capabilities each one declares."

    def handle(self, *args, **options):
        registry = get_registry()
        self.stdout.write(self.style.MIGRATE_HEADING("Enabled Brokers"))

        adapters = sorted(registry.all(), key=lambda a: a.broker_id)
        if not adapters:
            self.stdout.write("No brokers enabled (check ENABLED_BROKERS).")
            return

        for adapter in adapters:
            caps = ", ".join(sorted(cap.value for cap in adapter.capabilities)) or "-"
            self.stdout.write(f"- {adapter.broker_id} ({adapter.display_name or type(adapter).__name__}): {caps}")
