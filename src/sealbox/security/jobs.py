"""Background execution for long file operations.

A :class:`FileJob` runs one processor call on a daemon thread so the caller's
event loop or UI thread stays responsive. Progress is polled through
:attr:`FileJob.progress`; :meth:`FileJob.cancel` stops the work between
chunks.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, Optional

from sealbox.core.exceptions import OperationCancelledError


class JobState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FileJob:
    def __init__(
        self,
        func: Callable[..., Any],
        *args: Any,
        name: str = "sealbox-job",
        on_progress: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        **kwargs: Any,
    ):
        self._func = func
        self._args = args
        self._kwargs = kwargs
        self._user_progress = on_progress
        self._cancel_event = cancel_event or threading.Event()
        self._finished = threading.Event()
        self._lock = threading.Lock()
        self._progress = 0.0
        self._state = JobState.PENDING
        self._result: Any = None
        self._error: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "FileJob":
        with self._lock:
            self._state = JobState.RUNNING
        self._thread.start()
        return self

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    def cancel(self) -> None:
        """Ask the worker to stop before its next chunk. Has no effect once finished."""
        self._cancel_event.set()

    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def result(self, timeout: Optional[float] = None) -> Any:
        """Block until the job finishes, then return its value or raise its error."""
        if not self._finished.wait(timeout):
            raise TimeoutError("job still running")
        if self._error is not None:
            raise self._error
        return self._result

    def _on_progress(self, fraction: float) -> None:
        with self._lock:
            self._progress = fraction
        if self._user_progress is not None:
            self._user_progress(fraction)

    def _run(self) -> None:
        try:
            result = self._func(
                *self._args,
                on_progress=self._on_progress,
                cancel_event=self._cancel_event,
                **self._kwargs,
            )
        except OperationCancelledError as e:
            self._finish(JobState.CANCELLED, error=e)
        except Exception as e:
            # handed back to the caller by result()
            self._finish(JobState.FAILED, error=e)
        else:
            self._finish(JobState.DONE, result=result)

    def _finish(self, state: JobState, result: Any = None, error: Optional[BaseException] = None) -> None:
        with self._lock:
            self._state = state
            self._result = result
            self._error = error
        self._finished.set()
