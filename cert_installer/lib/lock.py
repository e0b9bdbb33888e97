"""Single-instance advisory lock."""

import fcntl
import os
from pathlib import Path

from cert_installer.lib.errors import LockError


class InstanceLock:
    """Non-blocking exclusive ``flock`` on a well-known path.

    Usage::

        with InstanceLock(path) as lock:
            if not lock.acquired:
                return  # another run holds it

    The lock is released on exit, or by the kernel when the process dies.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.acquired = False
        self._fd: int | None = None

    def acquire(self) -> bool:
        """Try to take the lock without blocking.

        Returns:
            True if acquired, False if another process holds it

        Raises:
            LockError: If the lock file cannot be opened
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT | os.O_CLOEXEC, 0o600)
        except OSError as e:
            raise LockError(f"cannot open lock file {self.path}: {e}") from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        except OSError as e:
            os.close(fd)
            raise LockError(f"cannot lock {self.path}: {e}") from e

        self._fd = fd
        self.acquired = True
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
            self.acquired = False

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
