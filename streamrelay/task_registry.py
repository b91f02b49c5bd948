import logging
import threading
import time
from typing import Dict, Optional

from .exceptions import TaskNotFound
from .models import Task

logger = logging.getLogger(__name__)


class TaskRegistry:
    """In-memory relay tasks keyed by id, safe to update from worker threads."""

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()
        self._last_id = 0

    def _next_id(self) -> str:
        # Millisecond timestamp, bumped when two tasks land in the same ms
        candidate = time.time_ns() // 1_000_000
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def create(self) -> str:
        with self._lock:
            task_id = self._next_id()
            self._tasks[task_id] = Task(task_id=task_id, start_time=time.time())
        logger.info(f"Created relay task {task_id}")
        return task_id

    def get(self, task_id: str) -> Task:
        """Snapshot of a task. Raises TaskNotFound for unknown ids."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFound("Task not found")
            return task.model_copy()

    def mark_upload_started(self, task_id: str) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is not None and task.status == "processing":
                task.upload_start_time = time.time()

    def mark_completed(self, task_id: str, video_id: Optional[str] = None) -> bool:
        return self._finish(task_id, "completed", video_id=video_id)

    def mark_failed(self, task_id: str, error: str) -> bool:
        return self._finish(task_id, "failed", error=error)

    def _finish(self, task_id: str, status: str, video_id: Optional[str] = None,
                error: Optional[str] = None) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.error(f"Task {task_id} not found in registry")
                return False
            if task.status != "processing":
                logger.warning(f"Task {task_id} already {task.status}, ignoring {status}")
                return False
            task.status = status
            task.finished_time = time.time()
            if status == "completed":
                task.upload_end_time = task.finished_time
                task.video_id = video_id
            else:
                task.error = error
        return True

    def evict_older_than(self, max_age_sec: float) -> int:
        """Drop tasks that finished more than max_age_sec ago."""
        cutoff = time.time() - max_age_sec
        with self._lock:
            stale = [
                task_id for task_id, task in self._tasks.items()
                if task.finished_time is not None and task.finished_time < cutoff
            ]
            for task_id in stale:
                del self._tasks[task_id]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)


TASKS = TaskRegistry()
