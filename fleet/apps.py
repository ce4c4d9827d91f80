import threading

from django.apps import AppConfig


class FleetConfig(AppConfig):
    name = 'fleet'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        from .ledger import SeatLedger
        from .store import FleetStore

        self.store = FleetStore()
        self.ledger = SeatLedger()
        self._ledger_restored = False
        self._restore_lock = threading.Lock()

    def booking_service(self):
        """A booking service over the current catalog, sharing this process's ledger and store."""
        from .booking import BookingService
        from .catalog import Catalog

        service = BookingService(self.ledger, self.store, Catalog.from_models())
        with self._restore_lock:
            if not self._ledger_restored:
                service.restore_ledger()
                self._ledger_restored = True
        return service

    def reset(self):
        """Start again with an empty ledger that is restored on next use."""
        with self._restore_lock:
            self.ledger.clear()
            self._ledger_restored = False
