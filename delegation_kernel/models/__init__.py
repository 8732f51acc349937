"""Delegation Kernel data models."""

from delegation_kernel.models.knowledge import (
    AccessLogEntry,
    AccessType,
    AgentMemory,
    KnowledgeEntry,
    LearningPattern,
    knowledge_id,
)
from delegation_kernel.models.runtime import (
    ConflictPolicy,
    KnowledgeConfig,
    TickerConfig,
)
from delegation_kernel.models.task import (
    PRIORITY_ORDER,
    Task,
    TaskPriority,
    TaskStatus,
)
from delegation_kernel.models.worker import (
    PriorityClass,
    Worker,
    WorkerSpec,
    WorkerStatus,
)
from delegation_kernel.models.workflow import StepDelegation, WorkflowDefinition

__all__ = [
    "AccessLogEntry",
    "AccessType",
    "AgentMemory",
    "ConflictPolicy",
    "KnowledgeConfig",
    "KnowledgeEntry",
    "LearningPattern",
    "PRIORITY_ORDER",
    "PriorityClass",
    "StepDelegation",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TickerConfig",
    "Worker",
    "WorkerSpec",
    "WorkerStatus",
    "WorkflowDefinition",
    "knowledge_id",
]
