"""
Background cleanup for Anti-Xray
"""

from typing import Callable, Optional
import threading

from endstone_anti_xray.context import AntiXrayContext


class PeriodicTask:
    """Runs a callback every interval seconds on a daemon thread until stopped"""

    def __init__(self, interval: float, callback: Callable[[], None], name: str, logger):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.logger = logger
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.run_now()

    def run_now(self) -> None:
        try:
            self.callback()
        except Exception as e:
            self.logger.error(f"[AntiXray] Scheduled task {self.name} failed: {str(e)}")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


class CleanupScheduler:
    """Five minute sweep of break windows, webhook messages and the ledger"""

    INTERVAL_SECONDS = 5 * 60

    def __init__(self, context: AntiXrayContext, tracker, notifier=None, ledger=None, interval: float = INTERVAL_SECONDS):
        self.context = context
        self.tracker = tracker
        self.notifier = notifier
        self.ledger = ledger
        self.task = PeriodicTask(interval, self.run_once, "antixray-cleanup", context.logger)

    def start(self) -> None:
        self.context.debug(f"Scheduling cleanup task to run every {int(self.task.interval)} seconds")
        self.task.start()

    def stop(self) -> None:
        self.task.stop()

    def run_once(self, now: Optional[float] = None) -> None:
        if now is None:
            now = self.context.now()
        self.context.debug("Running scheduled cleanup task")
        windows = self.tracker.sweep(now)
        messages = self.notifier.sweep(now) if self.notifier is not None else 0
        if self.ledger is not None:
            try:
                self.ledger.flush_to_durable_storage()
            except Exception as e:
                self.context.logger.error(f"[Ledger] Periodic sync failed: {str(e)}")
        self.context.debug(f"Cleanup complete ({windows} windows, {messages} webhook messages removed)")
