"""Advisory file lock serializing commands on one infrastructure."""

from __future__ import annotations

import fcntl
import logging
import os
import time
from pathlib import Path

from infrabackup.errors import LockTimeout

logger = logging.getLogger(__name__)


class InfraLock:
    """Exclusive ``flock`` on a lock file, polled until ``timeout`` seconds.

    Usage::

        with InfraLock(config.lock_file, timeout=30):
            ...
    """

    def __init__(self, path: Path, timeout: float = 30.0, poll_interval: float = 0.2) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._fd: int | None = None

    @property
    def acquired(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise LockTimeout(
                        f"Timed out after {self.timeout:g}s waiting for {self.path}",
                        hint="Another backup-infrastructure command is running for this infrastructure.",
                    ) from None
                time.sleep(self.poll_interval)

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired lock {self.path}")

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug(f"Released lock {self.path}")

    def __enter__(self) -> InfraLock:
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
