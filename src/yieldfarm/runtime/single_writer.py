import fcntl
import os


class SingleWriterLockHeld(RuntimeError):
    pass


class SingleWriterLock:
    """
    Enforces a single-process writer for a farm ledger database.
    Uses a filesystem lock; per-farm locks in the executor only serialise
    threads within one process.
    """

    def __init__(self, path: str):
        self.path = path
        self._fd = None

    def acquire(self) -> None:
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        fd = open(self.path, "w")
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            fd.close()
            raise SingleWriterLockHeld(f"single-writer lock already held: {self.path}")
        self._fd = fd

    def release(self) -> None:
        if self._fd:
            try:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                self._fd.close()
                self._fd = None

    @property
    def held(self) -> bool:
        return self._fd is not None
