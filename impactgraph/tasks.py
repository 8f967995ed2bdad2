"""Background execution of indexing and analysis runs.

Callers get a :class:`TaskHandle` immediately and observe completion either
through the handle's future or through status listeners.  The runner knows
nothing about how status is delivered to end users.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .impact import ImpactAnalyzer
from .indexer import Indexer
from .storage import open_store

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class TaskEvent:
    task_id: str
    kind: str
    status: TaskStatus
    project_id: Optional[str] = None
    error: Optional[BaseException] = None


class TaskHandle:
    def __init__(self, task_id: str, kind: str, project_id: Optional[str], future: Future):
        self.id = task_id
        self.kind = kind
        self.project_id = project_id
        self.future = future
        self.status = TaskStatus.PENDING

    def result(self, timeout: Optional[float] = None) -> Any:
        return self.future.result(timeout=timeout)

    def done(self) -> bool:
        return self.future.done()


Listener = Callable[[TaskEvent], None]


class BackgroundRunner:
    """Thread pool that serializes indexing runs per project."""

    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="impactgraph")
        self._listeners: List[Listener] = []
        self._project_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _project_lock(self, project_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._project_locks.setdefault(project_id, threading.Lock())

    def _emit(self, handle: TaskHandle, status: TaskStatus, error: Optional[BaseException] = None) -> None:
        handle.status = status
        event = TaskEvent(handle.id, handle.kind, status, handle.project_id, error)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.warning("Task listener failed on %s: %s", status.value, exc)

    def submit(
        self,
        kind: str,
        fn: Callable[..., Any],
        *args: Any,
        project_id: Optional[str] = None,
        **kwargs: Any,
    ) -> TaskHandle:
        """Schedule ``fn(*args, **kwargs)`` and return its handle at once."""
        future: Future = Future()
        handle = TaskHandle(uuid.uuid4().hex[:12], kind, project_id, future)
        self._emit(handle, TaskStatus.PENDING)

        def _run() -> None:
            lock = self._project_lock(project_id) if kind == "index" and project_id else None
            try:
                if lock is not None:
                    lock.acquire()
                self._emit(handle, TaskStatus.RUNNING)
                try:
                    value = fn(*args, **kwargs)
                finally:
                    if lock is not None:
                        lock.release()
            except Exception as exc:
                logger.error("Task %s (%s) failed: %s", handle.id, kind, exc)
                self._emit(handle, TaskStatus.FAILED, exc)
                future.set_exception(exc)
                return
            self._emit(handle, TaskStatus.SUCCEEDED)
            future.set_result(value)

        self._executor.submit(_run)
        return handle

    def submit_index(
        self,
        project_id: str,
        repository_id: str,
        root_dir: Path,
        linked_roots: Optional[Mapping[str, Path]] = None,
    ) -> TaskHandle:
        def _index():
            return Indexer(open_store(project_id)).index_repository(repository_id, root_dir, linked_roots)

        return self.submit("index", _index, project_id=project_id)

    def submit_analysis(
        self,
        analyzer: ImpactAnalyzer,
        project_id: str,
        repository_id: str,
        file_path: str,
        old_content: Optional[str] = None,
        new_content: Optional[str] = None,
    ) -> TaskHandle:
        return self.submit(
            "analysis", analyzer.analyze,
            project_id, repository_id, file_path, old_content, new_content,
            project_id=project_id,
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
