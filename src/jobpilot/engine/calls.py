"""Timeout wrapper for gateway and collaborator calls.

Each call runs on its own daemon thread; the caller waits at most `timeout`
seconds. A call that outlives its timeout is abandoned (its result is
dropped) and reported as `error_cls`, never as a hang of the dispatch pass.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Type, TypeVar

from ..kernel.errors import AutomationError

T = TypeVar("T")


def bounded_call(
    fn: Callable[..., T],
    *args: Any,
    timeout: float,
    error_cls: Type[AutomationError],
    what: str,
    **kwargs: Any,
) -> T:
    box: Dict[str, Any] = {}
    done = threading.Event()

    def _run() -> None:
        try:
            box["value"] = fn(*args, **kwargs)
        except Exception as e:
            box["error"] = e
        finally:
            done.set()

    t = threading.Thread(target=_run, name=f"jobpilot-call:{what}", daemon=True)
    t.start()
    if not done.wait(timeout if timeout > 0 else None):
        raise error_cls(f"{what} timed out after {timeout:g}s", code="timeout", details={"call": what})

    err = box.get("error")
    if err is not None:
        if isinstance(err, AutomationError):
            raise err
        raise error_cls(f"{what} failed: {err}", details={"call": what}) from err
    return box["value"]
