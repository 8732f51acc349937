"""
Dispatcher — binds delegated tasks to the best-fit worker.

Behavioral Contract:
- Candidates are dispatchable workers with at least one matching capability
- Candidates are ranked by efficiency, highest first; ties keep registration order
- With no candidate, raises NoCapableWorker and enqueues nothing
- The worker is bound before the task is enqueued; delegation never waits
  for execution
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from delegation_kernel.dispatch.capabilities import can_handle
from delegation_kernel.models.task import Task, TaskPriority, TaskStatus
from delegation_kernel.models.worker import Worker
from delegation_kernel.registry.store import WorkerRegistry
from delegation_kernel.scheduling.priority_queue import PriorityQueue

logger = logging.getLogger(__name__)


class NoCapableWorker(Exception):
    """Raised when no registered worker can handle a task type."""

    def __init__(self, task_type: str):
        super().__init__(f"No suitable worker found for task type: {task_type}")
        self.task_type = task_type


class Dispatcher:
    """Selects workers for tasks and feeds the priority queue."""

    def __init__(self, registry: WorkerRegistry, queue: PriorityQueue):
        self.registry = registry
        self.queue = queue
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()

    def find_best_worker(self, task_type: str) -> Optional[Worker]:
        """Highest-efficiency capable worker, or None."""
        candidates = [
            w for w in self.registry.dispatchable()
            if can_handle(w.capabilities, task_type)
        ]
        # sorted() is stable, so equal scores keep registration order
        candidates = sorted(
            candidates, key=lambda w: w.efficiency_score, reverse=True
        )
        return candidates[0] if candidates else None

    def delegate(
        self,
        task_type: str,
        parameters: Optional[dict] = None,
        priority=TaskPriority.MEDIUM,
        workflow_run_id: Optional[str] = None,
    ) -> str:
        """Create a task, bind it to a worker and enqueue it. Returns the task ID."""
        task = Task(
            id=f"task-{uuid4().hex[:16]}",
            type=task_type,
            parameters=dict(parameters or {}),
            priority=TaskPriority.coerce(priority),
            status=TaskStatus.PENDING,
            workflow_run_id=workflow_run_id,
            created_at=datetime.now(timezone.utc),
        )

        worker = self.find_best_worker(task_type)
        if worker is None:
            raise NoCapableWorker(task_type)

        task.assigned_agent = worker.id
        with self._lock:
            self._tasks[task.id] = task
        self.queue.enqueue(task)

        logger.info(
            "Task %s delegated: %s to %s (%s)",
            task.id, task_type, worker.name, task.priority.value,
        )
        return task.id

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def list_tasks(self, status: Optional[TaskStatus] = None) -> List[Task]:
        with self._lock:
            tasks = list(self._tasks.values())
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        return tasks
