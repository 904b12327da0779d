from __future__ import annotations

import signal

from django.core.management.base import BaseCommand

from trading.execution.scheduling import SchedulerWorker, get_scheduler


class Command(BaseCommand):
    help = "Run the durable order scheduler: poll ScheduledJob rows and execute due orders."

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Fire the jobs that are due right now, synchronously, then exit.",
        )
        parser.add_argument(
            "--poll-seconds",
            type=float,
            default=None,
            help="Polling interval (default: settings.SCHEDULER_POLL_SECONDS).",
        )
        parser.add_argument(
            "--workers",
            type=int,
            default=None,
            help="Worker threads for due jobs (default: settings.SCHEDULER_WORKERS).",
        )

    def handle(self, *args, **options):
        scheduler = get_scheduler()

        if options["once"]:
            fired = scheduler.run_due()
            self.stdout.write(self.style.SUCCESS(f"Fired {fired} due job(s)."))
            return

        worker = SchedulerWorker(
            scheduler=scheduler,
            poll_seconds=options["poll_seconds"],
            max_workers=options["workers"],
        )
        pending = len(scheduler.store.pending())
        self.stdout.write(f"Scheduler started with {pending} pending job(s). Ctrl+C to stop.")

        signal.signal(signal.SIGTERM, lambda *_: worker.stop())
        try:
            worker.run_forever()
        except KeyboardInterrupt:
            worker.stop()
        finally:
            worker.shutdown()
        self.stdout.write(self.style.SUCCESS("Scheduler stopped."))
