"""
Per-directory writer lock for fact logs.

The lock is a sentinel file (``.knowledge/.lock``) created with an atomic
exclusive create, so two writers can never both believe they hold it.
It is advisory: only code that goes through KnowledgeLock is excluded.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional

from smart_codebase.knowledge.paths import LOCK_FILE_NAME, PathLike

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 5.0
LOCK_POLL_INTERVAL_SECONDS = 0.05


class LockTimeout(TimeoutError):
    """The per-directory lock could not be acquired in time."""

    def __init__(self, lock_path: Path, timeout: float):
        super().__init__(f"Failed to acquire lock on {lock_path} within {timeout:g}s")
        self.lock_path = lock_path
        self.timeout = timeout


class KnowledgeLock:
    """Exclusive lock on one directory's ``.knowledge`` folder.

    Usage::

        with KnowledgeLock(knowledge_dir):
            ...read-modify-write facts.jsonl...
    """

    def __init__(
        self,
        knowledge_dir: PathLike,
        timeout: float = LOCK_TIMEOUT_SECONDS,
        poll_interval: float = LOCK_POLL_INTERVAL_SECONDS,
    ):
        self.path = Path(knowledge_dir) / LOCK_FILE_NAME
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Create the sentinel file, polling until *timeout* elapses.

        Raises:
            LockTimeout: another writer kept the lock for the whole window.
            OSError: the sentinel could not be created for any other reason.
        """
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise LockTimeout(self.path, self.timeout) from None
                time.sleep(self.poll_interval)
                continue

            with os.fdopen(fd, "w") as fh:
                fh.write(str(os.getpid()))
            self._held = True
            logger.debug(f"Acquired lock {self.path}")
            return

    def release(self) -> None:
        """Delete the sentinel file. Failures are logged, never raised."""
        if not self._held:
            return
        self._held = False
        try:
            self.path.unlink()
            logger.debug(f"Released lock {self.path}")
        except FileNotFoundError:
            logger.warning(f"Lock file {self.path} vanished before release")
        except OSError as e:
            logger.error(f"Failed to release lock {self.path}: {e}")

    def __enter__(self) -> "KnowledgeLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        return None
