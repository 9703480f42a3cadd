"""
Deadline Reconciliation Runner

Background task runner that periodically persists derived deadline statuses.
Explicitly constructed and owned by its caller (the app lifespan), with a
start/stop lifecycle. Each pass opens and closes its own session.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ...models.db_models import utcnow
from .status import StatusReconciler


logger = logging.getLogger(__name__)


class DeadlineReconciliationRunner:
    """
    Usage:
        runner = DeadlineReconciliationRunner(SessionLocal, interval_seconds=3600)
        runner.start()
        ...
        runner.stop()
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: float = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.last_result: Optional[Dict[str, Any]] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="deadline-reconciler", daemon=True
        )
        self._thread.start()
        logger.info(f"Deadline reconciliation runner started (every {self.interval_seconds}s)")

    def stop(self, timeout: float = 10) -> None:
        """Signal the loop to exit and wait for the current pass to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Deadline reconciliation runner stopped")

    def run_once(self) -> Dict[str, Any]:
        """Run a single reconciliation pass in a fresh session."""
        db = self.session_factory()
        try:
            result = StatusReconciler(db, clock=self.clock).reconcile()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self.last_result = result
        return result

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Deadline reconciliation pass failed: {e}")
            self._stop_event.wait(self.interval_seconds)
