# Background thread that expires stale delivery requests on an interval

import logging
import threading
from typing import Callable, Dict, List

from db.maintenance_operations import MaintenanceOperations
from db.manager import DocumentStore

logger = logging.getLogger(__name__)


class ExpiryMonitor:
    """
    Runs the delivery-request expiry sweep every `interval_seconds`

    The first sweep happens one interval after start; `run_once` sweeps
    immediately on the calling thread.
    """

    def __init__(self, store_provider: Callable[[], DocumentStore], interval_seconds: float):
        self.store_provider = store_provider
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="expiry-monitor", daemon=True)

    def start(self):
        if not self._thread.is_alive():
            logger.info(f"Starting delivery request expiry monitor (interval={self.interval_seconds}s)")
            self._thread.start()

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join(timeout)
        logger.info("Delivery request expiry monitor stopped")

    def run_once(self) -> Dict[str, List[str]]:
        return MaintenanceOperations(self.store_provider()).expire_stale_requests()

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                logger.exception("Expiry monitor sweep failed, retrying next interval")
