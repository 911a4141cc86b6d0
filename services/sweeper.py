import logging
import threading

from crud.verification_store import VerificationStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Calls ``sweep_expired()`` every ``interval`` seconds until stopped."""

    def __init__(self, store: VerificationStore, *, interval: float = 60.0) -> None:
        self._store = store
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        """Start the worker thread (idempotent)."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info("Expiry sweeper started (every %.0fs)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        if not self._thread:
            return
        self._stop.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Expiry sweeper stopped")

    def run_once(self) -> int:
        return self._store.sweep_expired()

    def _run_loop(self) -> None:
        # wait() returns True as soon as stop() is called
        while not self._stop.wait(self._interval):
            try:
                self.run_once()
            except Exception:  # pragma: no cover - unexpected
                logger.exception("expiry sweep failed")
