import logging
import threading
import time

from lumen.resizer import Resizer


class ExpirySweeper(threading.Thread):
    """
    Background thread that deletes expired cache files.

    Sweeps every interval seconds while it keeps finding expired files, and
    backs off (up to interval_long) while the cache is quiet.
    """

    log_name = "expiry-sweeper"

    def __init__(self, resizer: Resizer, interval: float, interval_long: float = 0):
        self.resizer = resizer
        self.interval_short = interval
        self.interval_long = max(interval_long, interval * 8)
        self.running: bool = False
        self.logger = logging.getLogger(self.log_name)
        self.stopped = threading.Event()
        super().__init__(daemon=True)

    def run(self):
        self.running = True
        interval = self.interval_short
        while self.running:
            try:
                active = self.step()
                if active:
                    interval = self.interval_short
                else:
                    interval = min(interval * 2, self.interval_long)
            except Exception as e:
                self.logger.exception(f"{self.log_name}: {e}")
                interval = self.interval_long
            if self.stopped.wait(interval):
                break
        self.running = False

    def step(self) -> bool:
        """
        Runs one sweep. Returns if it deleted anything.
        """
        start = time.monotonic()
        deleted = self.resizer.clean_expired()
        self.logger.debug(
            f"Sweep deleted {deleted} files in {time.monotonic() - start:.2f}s"
        )
        return deleted > 0

    def stop(self):
        self.running = False
        self.stopped.set()
