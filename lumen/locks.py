import fcntl
import os
import time
from pathlib import Path
from typing import BinaryIO

from lumen.exceptions import LockTimeoutError


class CacheLock:
    """
    Exclusive per-cache-key lock, held with flock() on a sidecar lock file.

    Works between processes on one host and between threads in one process,
    as every acquire opens its own file description. The lock file is
    removed on release; waiters that were blocked on the removed file notice
    the inode changed underneath them and retry on the new one.

    With a timeout of None, acquiring blocks until the lock is free.
    """

    poll_interval: float = 0.05

    def __init__(self, path: Path, timeout: float | None = None):
        self.path = path
        self.timeout = timeout
        self.handle: BinaryIO | None = None

    def __enter__(self) -> "CacheLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def acquire(self):
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while True:
            handle = open(self.path, "a+b")
            try:
                self._flock(handle, deadline)
            except BaseException:
                handle.close()
                raise
            if self._is_current(handle):
                self.handle = handle
                return
            # Previous holder unlinked the file while we waited; go again
            handle.close()

    def release(self):
        if self.handle is None:
            return
        # Unlink before unlocking so that anyone waiting on this inode retries
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        try:
            fcntl.flock(self.handle, fcntl.LOCK_UN)
        finally:
            self.handle.close()
            self.handle = None

    def _flock(self, handle: BinaryIO, deadline: float | None):
        if deadline is None:
            fcntl.flock(handle, fcntl.LOCK_EX)
            return
        while True:
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(f"Timed out waiting for lock {self.path}")
                time.sleep(self.poll_interval)

    def _is_current(self, handle: BinaryIO) -> bool:
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return False
        held = os.fstat(handle.fileno())
        return (held.st_dev, held.st_ino) == (on_disk.st_dev, on_disk.st_ino)
