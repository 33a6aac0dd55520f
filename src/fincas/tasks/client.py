"""Tasks client with idempotent enqueue.

Background work (inbound message processing, remote catalog pushes) is
dispatched through this client and never awaited by the caller.

Backends selectable via TASKS_BACKEND env var:
- inline (default): records the task without executing it (dev/tests)
- http: sends tasks to the worker via HTTP POST
- cloud_tasks: sends tasks to Google Cloud Tasks
"""

import os
import uuid
from collections import OrderedDict
from datetime import datetime

# Most recent task_ids remembered per process; older ones are forgotten
MAX_TRACKED_TASK_IDS = 10_000


class TaskEnqueueError(RuntimeError):
    """Raised by callers when a task that must run was not enqueued."""


def new_task_id(prefix: str) -> str:
    """Build a unique task id for work that has no natural idempotency key."""
    return f"{prefix}:{uuid.uuid4().hex}"


class TasksClient:
    """Tasks client with idempotent enqueue by task_id.

    Tracks the most recent task_ids to ensure idempotency within the
    process (same task_id = no-op). A task_id is only remembered once the
    backend accepted it, so a refused task can be enqueued again.
    Cross-process dedup is the backend's job (Cloud Tasks task names) or
    the handler's (processed_events receipts).
    """

    def __init__(self, backend: str | None = None, max_tracked: int = MAX_TRACKED_TASK_IDS) -> None:
        self._executed_ids: OrderedDict[str, None] = OrderedDict()
        self._max_tracked = max_tracked
        self._scheduled_tasks: list[dict] = []
        self._backend = backend or os.environ.get("TASKS_BACKEND", "inline")

    def _remember(self, task_id: str) -> None:
        self._executed_ids[task_id] = None
        while len(self._executed_ids) > self._max_tracked:
            self._executed_ids.popitem(last=False)

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Enqueue task for HTTP-based execution on the worker.

        Args:
            task_id: Unique identifier for idempotency.
            url_path: Worker endpoint path (e.g., "/tasks/catalog/sync-item").
            payload: JSON-serializable task data.
            correlation_id: Optional correlation ID for tracing.
            schedule_time: Optional future execution time.

        Returns:
            True if task was enqueued (new task_id).
            False if no-op (task_id already seen) or the backend refused it.

        Raises:
            ValueError: If TASKS_BACKEND is unknown.
        """
        if task_id in self._executed_ids:
            return False

        if self._backend == "inline":
            self._scheduled_tasks.append({
                "task_id": task_id,
                "url_path": url_path,
                "payload": payload,
                "correlation_id": correlation_id,
                "schedule_time": schedule_time,
            })
            accepted = True

        elif self._backend == "http":
            from fincas.tasks.http_backend import enqueue_http
            accepted = enqueue_http(
                task_id, url_path, payload, correlation_id, schedule_time
            )

        elif self._backend == "cloud_tasks":
            from fincas.tasks.cloud_tasks_backend import enqueue_cloud_task
            accepted = enqueue_cloud_task(
                task_id, url_path, payload, correlation_id, schedule_time
            )

        else:
            raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")

        if accepted:
            self._remember(task_id)
        return accepted

    def was_executed(self, task_id: str) -> bool:
        """Check if task_id was recently accepted by the backend."""
        return task_id in self._executed_ids

    def get_scheduled_tasks(self, url_path: str | None = None) -> list[dict]:
        """Get tasks recorded by the inline backend, optionally filtered by path."""
        if url_path is None:
            return list(self._scheduled_tasks)
        return [t for t in self._scheduled_tasks if t["url_path"] == url_path]

    def clear(self) -> None:
        """Clear seen task_ids and recorded tasks (useful for testing)."""
        self._executed_ids.clear()
        self._scheduled_tasks.clear()


# Process-wide client shared by webhook, admin routes and domain code
_tasks_client: TasksClient | None = None


def get_tasks_client() -> TasksClient:
    """Get the shared tasks client (lazily created)."""
    global _tasks_client
    if _tasks_client is None:
        _tasks_client = TasksClient()
    return _tasks_client


def set_tasks_client(client: TasksClient | None) -> None:
    """Replace the shared tasks client (for tests)."""
    global _tasks_client
    _tasks_client = client
