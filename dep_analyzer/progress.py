"""Per-file progress tracking for an analyzer run."""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


class FileState(str, enum.Enum):
    DISCOVERED = "discovered"
    DISPATCHED = "dispatched"
    RESOLVED = "resolved"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (FileState.RESOLVED, FileState.FAILED, FileState.CANCELLED)


_ALLOWED = {
    FileState.DISCOVERED: {FileState.DISPATCHED, FileState.FAILED, FileState.CANCELLED},
    FileState.DISPATCHED: {FileState.RESOLVED, FileState.FAILED, FileState.CANCELLED},
}


@dataclass
class FileProgress:
    path: str
    manager: str = ""
    state: FileState = FileState.DISCOVERED
    start_time: float | None = None
    end_time: float | None = None
    error: str | None = None

    @property
    def duration(self) -> float | None:
        if self.start_time and self.end_time:
            return round(self.end_time - self.start_time, 2)
        return None


class ProgressTracker:
    """Track the state of every definition file of a run.

    Safe to update from worker threads. Callbacks run on the updating thread
    and must not block.
    """

    def __init__(self) -> None:
        self.files: dict[str, FileProgress] = {}
        self.callbacks: list[Callable[[FileProgress], None]] = []
        self._lock = threading.Lock()

    def discover(self, path: str, manager: str = "") -> None:
        with self._lock:
            p = FileProgress(path=path, manager=manager)
            self.files[path] = p
        self._notify(p)

    def dispatch(self, path: str) -> None:
        self._transition(path, FileState.DISPATCHED)

    def resolve(self, path: str) -> None:
        self._transition(path, FileState.RESOLVED)

    def fail(self, path: str, error: str) -> None:
        self._transition(path, FileState.FAILED, error)

    def cancel(self, path: str, reason: str) -> None:
        self._transition(path, FileState.CANCELLED, reason)

    def state(self, path: str) -> FileState | None:
        p = self.files.get(path)
        return p.state if p else None

    def count(self, state: FileState) -> int:
        with self._lock:
            return sum(1 for p in self.files.values() if p.state == state)

    def get_summary(self) -> dict[str, Any]:
        with self._lock:
            files = sorted(self.files.values(), key=lambda p: p.path)
            counts = {s.value: 0 for s in FileState}
            for p in files:
                counts[p.state.value] += 1
            return {
                "files": [
                    {
                        "path": p.path,
                        "manager": p.manager,
                        "state": p.state.value,
                        "duration": p.duration,
                        "error": p.error,
                    }
                    for p in files
                ],
                "counts": counts,
            }

    def _transition(self, path: str, new: FileState, error: str | None = None) -> None:
        with self._lock:
            p = self.files.get(path)
            if p is None:
                p = FileProgress(path=path)
                self.files[path] = p
            if new not in _ALLOWED.get(p.state, set()):
                raise ValueError(f"{path}: cannot move from {p.state.value} to {new.value}")
            p.state = new
            now = time.monotonic()
            if new == FileState.DISPATCHED:
                p.start_time = now
            else:
                p.end_time = now
            p.error = error
        self._notify(p)

    def _notify(self, p: FileProgress) -> None:
        for cb in self.callbacks:
            try:
                cb(p)
            except Exception:
                logger.debug("Progress callback error for %s", p.path, exc_info=True)
