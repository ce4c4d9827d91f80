import logging
import signal

from django.apps import apps
from django.core.management.base import BaseCommand, CommandError

from fleet.catalog import Catalog
from fleet.conf import fleet_setting
from fleet.simulation import PositionSimulator, TickDriver

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Move every active coach along its route, publishing positions on each tick."

    def add_arguments(self, parser):
        parser.add_argument("--interval", type=float, help="Seconds between ticks.")
        parser.add_argument("--step-count", type=int, help="Sub-steps between two waypoints.")
        parser.add_argument("--ticks", type=int, help="Stop after this many ticks.")

    def handle(self, *args, **options):
        interval = options["interval"] if options["interval"] is not None else fleet_setting("tick_seconds")
        step_count = options["step_count"] if options["step_count"] is not None else fleet_setting("step_count")

        store = apps.get_app_config("fleet").store
        catalog = Catalog.from_models()
        try:
            simulator = PositionSimulator(catalog, store, step_count=step_count)
            driver = TickDriver(simulator, interval=interval)
        except ValueError as error:
            raise CommandError(str(error)) from error

        registered = simulator.register_all()
        if not registered:
            raise CommandError("No vehicles in the catalog. Run load_catalog first.")

        def request_stop(signum, frame):
            logger.info("Received signal %s; finishing the current tick", signum)
            driver.stop()

        previous = {sig: signal.signal(sig, request_stop) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            passes = driver.run(max_ticks=options["ticks"])
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        report = driver.last_report
        skipped = len(report.skipped) if report else 0
        self.stdout.write(
            self.style.SUCCESS(f"Ran {passes} ticks for {registered} vehicles ({skipped} skipped on the last tick).")
        )
