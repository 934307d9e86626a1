"""
Cancellable background tasks for the session controller.

Each task runs on a thread pool under a stable cancel id. Starting a task
under an id cancels the one already running there. A task reports back only
through the send function it is given; once its token is cancelled, that
send silently drops messages.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Any, Callable, Dict, Iterable, Optional, Tuple


Send = Callable[[Any], None]


class CancelToken:
    """Cooperative cancellation flag shared between the runner and one task."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to timeout; True if cancelled meanwhile."""
        return self._event.wait(timeout)


class TaskRunner:
    """
    Runs effects in a thread pool, scoped by cancel id.

    Usage:
        runner = TaskRunner(send=controller.send)
        runner.run("transcription", lambda token, send: send(do_work()))
        runner.cancel("transcription")

    Ids listed in background_ids (long-lived loops such as metering) are not
    counted by has_pending().
    """

    def __init__(
        self,
        send: Send,
        max_workers: int = 6,
        background_ids: Iterable[str] = ("metering",),
    ):
        self._send = send
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="effect")
        self._background = frozenset(background_ids)
        self._tasks: Dict[str, Tuple[CancelToken, Future]] = {}
        self._lock = threading.Lock()

    def run(self, cancel_id: str, fn: Callable[[CancelToken, Send], None]) -> CancelToken:
        """Start fn(token, send) under cancel_id, superseding any previous task."""
        token = CancelToken()

        def send(action: Any) -> None:
            if token.cancelled:
                return
            self._send(action)

        def task() -> None:
            try:
                fn(token, send)
            except Exception as e:
                if not token.cancelled:
                    print(f"[Effects] Task '{cancel_id}' failed: {e}")
            finally:
                with self._lock:
                    current = self._tasks.get(cancel_id)
                    if current is not None and current[0] is token:
                        del self._tasks[cancel_id]

        with self._lock:
            previous = self._tasks.pop(cancel_id, None)
            if previous is not None:
                previous[0].cancel()
            self._tasks[cancel_id] = (token, self._executor.submit(task))

        return token

    def cancel(self, cancel_id: str) -> bool:
        """Cancel the task under cancel_id. Returns True if one was running."""
        with self._lock:
            entry = self._tasks.pop(cancel_id, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def wait(self, cancel_id: str, timeout: Optional[float] = None) -> None:
        """Block until the task currently under cancel_id (if any) finishes."""
        with self._lock:
            entry = self._tasks.get(cancel_id)
        if entry is not None:
            wait_futures([entry[1]], timeout=timeout)

    def is_running(self, cancel_id: str) -> bool:
        with self._lock:
            return cancel_id in self._tasks

    def has_pending(self) -> bool:
        """True while any non-background task is still running."""
        with self._lock:
            return any(cid not in self._background for cid in self._tasks)

    def cancel_all(self) -> None:
        with self._lock:
            entries = list(self._tasks.values())
            self._tasks.clear()
        for token, _ in entries:
            token.cancel()

    def shutdown(self, wait: bool = True) -> None:
        self.cancel_all()
        self._executor.shutdown(wait=wait)
