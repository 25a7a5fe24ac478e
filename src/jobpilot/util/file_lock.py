from __future__ import annotations

from pathlib import Path
from typing import IO

try:
    import fcntl
except ImportError:  # Windows: in-process locking only.
    fcntl = None  # type: ignore[assignment]


class LockUnavailableError(RuntimeError):
    pass


def acquire_lockfile(path: Path, *, blocking: bool = True) -> IO[str]:
    """Open `path` and take an exclusive advisory lock on it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("a+", encoding="utf-8")
    if fcntl is None:
        return handle
    flags = fcntl.LOCK_EX
    if not blocking:
        flags |= fcntl.LOCK_NB
    try:
        fcntl.flock(handle.fileno(), flags)
    except BlockingIOError as e:
        handle.close()
        raise LockUnavailableError(f"lock busy: {path}") from e
    except OSError:
        handle.close()
        raise
    return handle


def release_lockfile(handle: IO[str]) -> None:
    try:
        if fcntl is not None:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        handle.close()

