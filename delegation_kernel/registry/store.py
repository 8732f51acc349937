"""
Worker Registry — holds the worker pool and its lifecycle state.

Mutated by: Delegation System (registration) and Execution Ticker (status, efficiency, history)
Queried by: Dispatcher (candidate selection) + system status
"""

import logging
import threading
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

from delegation_kernel.models.worker import (
    MAX_EFFICIENCY,
    MIN_EFFICIENCY,
    UNDISPATCHABLE_STATUSES,
    Worker,
    WorkerSpec,
    WorkerStatus,
)

logger = logging.getLogger(__name__)


def _clamp_efficiency(score: float) -> float:
    return round(max(MIN_EFFICIENCY, min(MAX_EFFICIENCY, score)), 4)


class WorkerRegistry:
    """
    In-memory worker registry.
    Iteration order is registration order; re-registration keeps a worker's slot.
    """

    def __init__(
        self,
        efficiency_increment: float = 0.01,
        efficiency_decrement: float = 0.05,
    ):
        self.efficiency_increment = efficiency_increment
        self.efficiency_decrement = efficiency_decrement
        self._workers: Dict[str, Worker] = {}
        self._lock = threading.Lock()

    def register(self, spec: WorkerSpec) -> Worker:
        """
        Register a worker, or update the configuration of an existing one.

        Re-registering an ID replaces name, type, capabilities, specialization
        and priority; efficiency, history and status are kept.
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            existing = self._workers.get(spec.id)
            if existing:
                existing.name = spec.name
                existing.type = spec.type
                existing.capabilities = list(spec.capabilities)
                existing.specialization = spec.specialization
                existing.priority = spec.priority
                existing.updated_at = now
                logger.info("Worker %s re-registered with %d capabilities",
                            spec.id, len(spec.capabilities))
                return existing

            worker = Worker(
                **spec.model_dump(),
                registered_at=now,
                updated_at=now,
            )
            self._workers[spec.id] = worker
            logger.info("Worker %s registered (%s)", spec.id, spec.name)
            return worker

    def activate(self, worker_id: str) -> Optional[Worker]:
        """Move a registered worker into service."""
        return self.set_status(worker_id, WorkerStatus.ACTIVE)

    def get(self, worker_id: str) -> Optional[Worker]:
        with self._lock:
            return self._workers.get(worker_id)

    def all(self) -> List[Worker]:
        """All workers in registration order."""
        with self._lock:
            return list(self._workers.values())

    def dispatchable(self) -> List[Worker]:
        """Workers the dispatcher may select, in registration order."""
        return [w for w in self.all() if w.status not in UNDISPATCHABLE_STATUSES]

    def remove(self, worker_id: str) -> bool:
        with self._lock:
            return self._workers.pop(worker_id, None) is not None

    def set_status(self, worker_id: str, status: WorkerStatus) -> Optional[Worker]:
        with self._lock:
            worker = self._workers.get(worker_id)
            if worker:
                worker.status = status
                worker.updated_at = datetime.now(timezone.utc)
            return worker

    def record_success(self, worker_id: str, task_id: str) -> Optional[Worker]:
        """Reward a worker for a completed task. An errored worker heals here."""
        with self._lock:
            worker = self._workers.get(worker_id)
            if not worker:
                return None
            worker.efficiency_score = _clamp_efficiency(
                worker.efficiency_score + self.efficiency_increment
            )
            worker.task_history.append(task_id)
            worker.status = WorkerStatus.ACTIVE
            worker.updated_at = datetime.now(timezone.utc)
            return worker

    def record_failure(self, worker_id: str, task_id: str) -> Optional[Worker]:
        """Penalize a worker for a failed task and mark it errored."""
        with self._lock:
            worker = self._workers.get(worker_id)
            if not worker:
                return None
            worker.efficiency_score = _clamp_efficiency(
                worker.efficiency_score - self.efficiency_decrement
            )
            worker.status = WorkerStatus.ERROR
            worker.updated_at = datetime.now(timezone.utc)
            logger.warning(
                "Worker %s failed task %s; efficiency now %.2f",
                worker_id, task_id, worker.efficiency_score,
            )
            return worker

    def counts_by_status(self) -> Dict[str, int]:
        counts = Counter(w.status.value for w in self.all())
        return {status.value: counts.get(status.value, 0) for status in WorkerStatus}

    def __len__(self) -> int:
        with self._lock:
            return len(self._workers)
