"""
Delegation System — wires the registry, queue, dispatcher, ticker,
knowledge store and workflow engine together.

Every component is constructed explicitly and can be injected, so tests and
multiple independent systems can coexist in one process.
"""

import asyncio
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from delegation_kernel.config import Settings
from delegation_kernel.dispatch.dispatcher import Dispatcher
from delegation_kernel.execution.handlers import HandlerRegistry
from delegation_kernel.execution.ticker import ExecutionTicker
from delegation_kernel.knowledge.storage import (
    BackendUnavailable,
    FallbackStorage,
    LocalStorage,
    RemoteStorage,
)
from delegation_kernel.knowledge.store import KnowledgeStore
from delegation_kernel.messaging.hub import CommunicationHub
from delegation_kernel.models.knowledge import KnowledgeEntry
from delegation_kernel.models.runtime import TickerConfig
from delegation_kernel.models.task import Task, TaskPriority
from delegation_kernel.models.worker import Worker, WorkerSpec
from delegation_kernel.models.workflow import StepDelegation
from delegation_kernel.registry.fleet import DEFAULT_FLEET
from delegation_kernel.registry.store import WorkerRegistry
from delegation_kernel.scheduling.priority_queue import PriorityQueue
from delegation_kernel.workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class DelegationSystem:
    """Public entry point for callers of the delegation core."""

    def __init__(
        self,
        knowledge: Optional[KnowledgeStore] = None,
        registry: Optional[WorkerRegistry] = None,
        queue: Optional[PriorityQueue] = None,
        handlers: Optional[HandlerRegistry] = None,
        ticker_config: Optional[TickerConfig] = None,
    ):
        config = ticker_config or TickerConfig()
        self.knowledge = knowledge or KnowledgeStore()
        self.registry = registry or WorkerRegistry(
            efficiency_increment=config.efficiency_increment,
            efficiency_decrement=config.efficiency_decrement,
        )
        self.queue = queue or PriorityQueue()
        self.dispatcher = Dispatcher(self.registry, self.queue)
        self.ticker = ExecutionTicker(
            queue=self.queue,
            registry=self.registry,
            knowledge=self.knowledge,
            handlers=handlers,
            config=config,
        )
        self.workflows = WorkflowEngine(self.dispatcher)
        self.hub = CommunicationHub(self.knowledge)
        self.initialized = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DelegationSystem":
        """Build a system with storage backends chosen by settings."""
        settings = settings or Settings()
        remote = None
        if settings.remote_url:
            remote = RemoteStorage(
                settings.remote_url,
                api_key=settings.remote_api_key,
                timeout=settings.remote_timeout_seconds,
            )
        storage = FallbackStorage(local=LocalStorage(settings.local_db_path), remote=remote)
        system = cls(
            knowledge=KnowledgeStore(storage, settings.knowledge_config()),
            ticker_config=settings.ticker_config(),
        )
        system.initialize(
            seed_knowledge=settings.seed_core_knowledge,
            deploy_fleet=settings.deploy_default_fleet,
        )
        return system

    def initialize(self, seed_knowledge: bool = True, deploy_fleet: bool = True) -> None:
        if seed_knowledge:
            self.knowledge.seed_core_knowledge()
        if deploy_fleet:
            self.deploy_default_fleet()
        self.initialized = True
        logger.info("Delegation system ready with %d workers", len(self.registry))

    # --- Workers ---

    def register_worker(self, spec: WorkerSpec, activate: bool = True) -> Worker:
        """Register (or reconfigure) a worker and record it in storage."""
        worker = self.registry.register(spec)
        if activate:
            self.registry.activate(worker.id)
        self._record_worker(worker)
        return worker

    def deploy_default_fleet(self) -> List[Worker]:
        return [self.register_worker(spec) for spec in DEFAULT_FLEET]

    def _record_worker(self, worker: Worker) -> None:
        # Registration must not fail because the agents table cannot be written.
        try:
            self.knowledge.storage.upsert("agents", worker.to_record())
        except (BackendUnavailable, sqlite3.Error) as e:
            logger.warning("Failed to record worker %s: %s", worker.id, e)

    # --- Tasks ---

    def delegate(
        self,
        task_type: str,
        parameters: Optional[dict] = None,
        priority=TaskPriority.MEDIUM,
    ) -> str:
        """Queue a task on the best-fit worker. Raises NoCapableWorker."""
        return self.dispatcher.delegate(task_type, parameters, priority)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.dispatcher.get_task(task_id)

    async def tick(self) -> Optional[Task]:
        return await self.ticker.tick()

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        await self.ticker.run_async(stop_event)

    def get_system_status(self) -> Dict[str, Any]:
        """Point-in-time snapshot of workers and queue depth."""
        counts = self.registry.counts_by_status()
        return {
            "initialized": self.initialized,
            "totalWorkers": len(self.registry),
            "active": counts["active"],
            "processing": counts["processing"],
            "idle": counts["idle"],
            "error": counts["error"],
            "queuedTasks": self.queue.size(),
            "lanes": self.queue.lane_sizes(),
            "inFlight": self.ticker.in_flight,
            "ticker": self.ticker.status,
            "communicationChannels": self.hub.channel_count(),
            "storageDegraded": self.knowledge.storage.degraded,
        }

    # --- Knowledge ---

    def store_knowledge(
        self,
        category: str,
        key: str,
        value: Any,
        source_id: str = "system",
        confidence: float = 1.0,
    ) -> str:
        return self.knowledge.store(category, key, value, source_id, confidence)

    def retrieve_knowledge(
        self, category: str, key: str, requester_id: str = "unknown"
    ) -> Any:
        return self.knowledge.retrieve(category, key, requester_id)

    def query_knowledge(
        self, term: str, requester_id: str = "unknown"
    ) -> List[KnowledgeEntry]:
        return self.knowledge.query(term, requester_id)

    # --- Workflows ---

    def execute_workflow(
        self, name: str, parameters: Optional[dict] = None
    ) -> Dict[str, StepDelegation]:
        return self.workflows.execute(name, parameters)
