"""
Execution Ticker — drains the priority queue and runs tasks on their workers.

A fixed pool of consumers pulls from the queue. Each consumer runs one task
at a time and each worker runs one task at a time, so at most
`max_concurrency` tasks are ever in flight. An idle consumer waits one tick
interval before polling again.

Per task:
  pending → in-progress → (completed | failed)
Completed results are stored under the "task_results" knowledge category.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from delegation_kernel.execution.handlers import HandlerRegistry
from delegation_kernel.knowledge.store import KnowledgeStore
from delegation_kernel.models.runtime import TickerConfig
from delegation_kernel.models.task import Task, TaskStatus
from delegation_kernel.models.worker import WorkerStatus
from delegation_kernel.registry.store import WorkerRegistry
from delegation_kernel.scheduling.priority_queue import PriorityQueue

logger = logging.getLogger(__name__)

RESULTS_CATEGORY = "task_results"


class ExecutionFailure(Exception):
    """Raised when a handler fails or exceeds the execution timeout."""
    pass


class ExecutionTicker:
    """Bounded consumer pool over the priority queue."""

    def __init__(
        self,
        queue: PriorityQueue,
        registry: WorkerRegistry,
        knowledge: KnowledgeStore,
        handlers: Optional[HandlerRegistry] = None,
        config: Optional[TickerConfig] = None,
    ):
        self.queue = queue
        self.registry = registry
        self.knowledge = knowledge
        self.handlers = handlers or HandlerRegistry()
        self.config = config or TickerConfig()

        self._worker_locks: Dict[str, asyncio.Lock] = {}
        self._in_flight = 0
        self._running = False

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def tick(self) -> Optional[Task]:
        """Dequeue at most one task and process it to a terminal state."""
        task = self.queue.dequeue()
        if task is None:
            return None
        await self.process(task)
        return task

    async def process(self, task: Task) -> Task:
        """Execute a dequeued task against its bound worker."""
        worker = self.registry.get(task.assigned_agent) if task.assigned_agent else None
        if worker is None:
            task.status = TaskStatus.FAILED
            task.error = f"Worker not found: {task.assigned_agent}"
            task.completed_at = datetime.now(timezone.utc)
            logger.error("Task %s dropped: %s", task.id, task.error)
            return task

        lock = self._worker_locks.setdefault(worker.id, asyncio.Lock())
        async with lock:
            self._in_flight += 1
            try:
                await self._execute(task, worker.id)
            finally:
                self._in_flight -= 1
        return task

    async def _execute(self, task: Task, worker_id: str) -> None:
        self.registry.set_status(worker_id, WorkerStatus.PROCESSING)
        task.status = TaskStatus.IN_PROGRESS
        task.started_at = datetime.now(timezone.utc)

        try:
            result = await self._run_handler(task)
        except ExecutionFailure as e:
            task.status = TaskStatus.FAILED
            task.error = str(e)
            task.completed_at = datetime.now(timezone.utc)
            self.registry.record_failure(worker_id, task.id)
            logger.warning("Task %s failed: %s (%s)", task.id, task.type, e)
            return

        task.status = TaskStatus.COMPLETED
        task.result = result
        task.completed_at = datetime.now(timezone.utc)
        self.registry.record_success(worker_id, task.id)
        logger.info("Task %s completed: %s by %s", task.id, task.type, worker_id)

        await self._persist_result(task, worker_id)

    async def _run_handler(self, task: Task):
        handler = self.handlers.resolve(task.type)
        parameters = dict(task.parameters)
        if inspect.iscoroutinefunction(handler):
            call = handler(parameters)
        else:
            call = asyncio.to_thread(handler, parameters)

        try:
            return await asyncio.wait_for(
                call, timeout=self.config.execution_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise ExecutionFailure(
                f"Execution timed out after {self.config.execution_timeout_seconds}s"
            ) from e
        except Exception as e:
            raise ExecutionFailure(f"{type(e).__name__}: {e}") from e

    async def _persist_result(self, task: Task, worker_id: str) -> None:
        try:
            await asyncio.to_thread(
                self.knowledge.store,
                RESULTS_CATEGORY,
                task.id,
                task.result,
                worker_id,
                self.config.result_confidence,
            )
        except Exception:
            # The task outcome stands even if its result could not be stored.
            logger.exception("Failed to store result of task %s", task.id)

    async def _consume(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            task = await self.tick()
            if task is not None:
                continue
            try:
                await asyncio.wait_for(
                    stop_event.wait(),
                    timeout=self.config.tick_interval_seconds,
                )
            except asyncio.TimeoutError:
                continue

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run the consumer pool until the stop event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        logger.info("Execution ticker started with %d consumers",
                    self.config.max_concurrency)
        consumers: List[asyncio.Task] = [
            asyncio.create_task(self._consume(stop_event))
            for _ in range(self.config.max_concurrency)
        ]
        try:
            await asyncio.gather(*consumers)
        finally:
            for consumer in consumers:
                consumer.cancel()
            self._running = False
            logger.info("Execution ticker stopped")
