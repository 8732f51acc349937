"""
Delegation Kernel API — FastAPI endpoints.

Exposes the delegation core to UI and CRUD callers:
- Task delegation and status
- Worker registration and system status
- Knowledge store, agent memory and learning patterns
- Workflow execution
- Inter-worker messaging
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from delegation_kernel.config import Settings, configure_logging
from delegation_kernel.dispatch.dispatcher import NoCapableWorker
from delegation_kernel.models.task import TaskPriority, TaskStatus
from delegation_kernel.models.worker import PriorityClass, WorkerSpec
from delegation_kernel.system import DelegationSystem
from delegation_kernel.workflow.engine import WorkflowNotFound


# --- Request/Response Models ---

class DelegateRequest(BaseModel):
    task_type: str
    parameters: dict = {}
    priority: TaskPriority = TaskPriority.MEDIUM


class WorkerRegisterRequest(BaseModel):
    id: str
    name: str
    type: str
    capabilities: List[str]
    specialization: str = ""
    priority: PriorityClass = PriorityClass.MEDIUM
    activate: bool = True


class KnowledgeStoreRequest(BaseModel):
    category: str
    key: str
    value: Any
    source_id: str = "api"
    confidence: float = Field(ge=0, le=1, default=1.0)


class AgentMemoryRequest(BaseModel):
    memory_type: str
    memory_data: Any
    priority: int = 5


class LearningPatternRequest(BaseModel):
    pattern_type: str
    pattern_data: Any
    effectiveness: float = Field(ge=0, le=1, default=0.5)


class MessageRequest(BaseModel):
    from_agent: str
    to_agent: str
    message: Any
    channel: str = "coordination"
    priority: str = "normal"


# --- Application Factory ---

def create_app(
    system: Optional[DelegationSystem] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or Settings()
    if system is None:
        configure_logging(settings.log_level)
        system = DelegationSystem.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop_event = asyncio.Event()
        runner = None
        if settings.autostart_ticker:
            runner = asyncio.create_task(system.run_async(stop_event))
        try:
            yield
        finally:
            stop_event.set()
            if runner is not None:
                await runner

    app = FastAPI(
        title="Delegation Kernel API",
        description="Task delegation engine and knowledge store",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.system = system

    # === TASKS ===

    @app.post("/tasks")
    def delegate_task(req: DelegateRequest):
        """Delegate a task to the best-fit worker."""
        try:
            task_id = system.delegate(req.task_type, req.parameters, req.priority)
        except NoCapableWorker as e:
            raise HTTPException(422, str(e))
        return {"task_id": task_id, "status": TaskStatus.PENDING.value}

    @app.get("/tasks")
    def list_tasks(status: Optional[TaskStatus] = None):
        return [t.model_dump(mode="json") for t in system.dispatcher.list_tasks(status)]

    @app.get("/tasks/{task_id}")
    def get_task(task_id: str):
        task = system.get_task(task_id)
        if not task:
            raise HTTPException(404, "Task not found")
        return task.model_dump(mode="json")

    @app.post("/ticker/tick")
    async def trigger_tick():
        """Process one queued task now (for testing)."""
        task = await system.tick()
        return {"task": task.model_dump(mode="json") if task else None}

    # === WORKERS & STATUS ===

    @app.get("/status")
    def get_status():
        return system.get_system_status()

    @app.get("/workers")
    def list_workers():
        return [w.model_dump(mode="json") for w in system.registry.all()]

    @app.post("/workers")
    def register_worker(req: WorkerRegisterRequest):
        spec = WorkerSpec(**req.model_dump(exclude={"activate"}))
        worker = system.register_worker(spec, activate=req.activate)
        return worker.model_dump(mode="json")

    # === KNOWLEDGE ===

    @app.post("/knowledge")
    def store_knowledge(req: KnowledgeStoreRequest):
        entry_id = system.store_knowledge(
            req.category, req.key, req.value, req.source_id, req.confidence
        )
        return {"id": entry_id}

    @app.get("/knowledge/search")
    def query_knowledge(q: str, requester: str = "api"):
        return [e.model_dump(mode="json") for e in system.query_knowledge(q, requester)]

    @app.get("/knowledge/stats")
    def knowledge_stats():
        return system.knowledge.get_stats()

    @app.get("/knowledge/{category}/{key}")
    def retrieve_knowledge(category: str, key: str, requester: str = "api"):
        value = system.retrieve_knowledge(category, key, requester)
        if value is None:
            raise HTTPException(404, "Knowledge entry not found")
        return {"id": f"{category}:{key}", "value": value}

    @app.get("/knowledge/{category}/{key}/related")
    def related_knowledge(category: str, key: str):
        return system.knowledge.get_related_knowledge(category, key)

    # === AGENT MEMORY & LEARNING PATTERNS ===

    @app.post("/memory/{agent_id}")
    def store_memory(agent_id: str, req: AgentMemoryRequest):
        memory_id = system.knowledge.store_agent_memory(
            agent_id, req.memory_type, req.memory_data, req.priority
        )
        return {"id": memory_id}

    @app.get("/memory/{agent_id}")
    def get_memory(agent_id: str, memory_type: Optional[str] = None):
        memories = system.knowledge.retrieve_agent_memory(agent_id, memory_type)
        return [m.model_dump(mode="json") for m in memories]

    @app.post("/patterns/{user_id}")
    def store_pattern(user_id: str, req: LearningPatternRequest):
        pattern_id = system.knowledge.store_learning_pattern(
            user_id, req.pattern_type, req.pattern_data, req.effectiveness
        )
        return {"id": pattern_id}

    @app.get("/patterns/{user_id}")
    def get_patterns(user_id: str, pattern_type: Optional[str] = None):
        patterns = system.knowledge.retrieve_learning_patterns(user_id, pattern_type)
        return [p.model_dump(mode="json") for p in patterns]

    # === WORKFLOWS ===

    @app.get("/workflows")
    def list_workflows():
        return [system.workflows.get(n).model_dump(mode="json")
                for n in system.workflows.names()]

    @app.post("/workflows/{name}/execute")
    def execute_workflow(name: str, parameters: Optional[dict] = None):
        try:
            results = system.execute_workflow(name, parameters or {})
        except WorkflowNotFound as e:
            raise HTTPException(404, str(e))
        return {step: r.model_dump(mode="json") for step, r in results.items()}

    # === MESSAGING ===

    @app.post("/messages")
    def send_message(req: MessageRequest):
        return system.hub.send_message(
            req.from_agent, req.to_agent, req.message, req.channel, req.priority
        )

    return app


# Default application instance
app = create_app()
