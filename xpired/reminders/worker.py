#!/usr/bin/env python3
"""
Thread-pool delivery loop for single-host deployments (no Celery broker).

Each thread repeatedly drains a batch from the durable queue and processes
it; row leases keep threads from picking the same task.
"""
from typing import List, Optional
import logging
import signal
import threading

from .dispatcher import DispatchSummary
from .runtime import ReminderRuntime, build_runtime

logger = logging.getLogger(__name__)


class ReminderWorker:
    def __init__(self, runtime: ReminderRuntime, *, threads: int = 2, poll_interval: float = 5.0):
        self.runtime = runtime
        self.threads = max(1, threads)
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            logger.info("[Worker] Already running - skipping duplicate start")
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._loop, name=f"reminder-worker-{i}", daemon=True)
            for i in range(self.threads)
        ]
        for t in self._threads:
            t.start()
        logger.info(f"[Worker] Started {self.threads} thread(s), poll interval {self.poll_interval}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal threads to finish their current task and wait for them."""
        self._stop.set()
        for t in self._threads:
            t.join(timeout)
        self._threads = []
        logger.info("[Worker] Stopped")

    def run_once(self) -> DispatchSummary:
        return self.runtime.dispatcher.run_once()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                summary = self.run_once()
            except Exception:
                logger.exception("[Worker] Dispatch cycle failed")
                summary = None
            # A full batch suggests more work is due; poll again immediately
            if summary is not None and summary.leased >= self.runtime.dispatcher.batch_size:
                continue
            self._stop.wait(self.poll_interval)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    runtime = build_runtime()
    cfg = runtime.reminder_settings
    worker = ReminderWorker(runtime, threads=cfg.WORKER_THREADS, poll_interval=cfg.POLL_INTERVAL_SECONDS)
    stopped = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"[Worker] Received signal {signum}, shutting down")
        stopped.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    worker.start()
    try:
        stopped.wait()
    finally:
        worker.stop(timeout=cfg.LEASE_SECONDS)
        runtime.close()


if __name__ == "__main__":
    main()
