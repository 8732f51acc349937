"""Workflow Model — statically declared multi-step recipes."""

from typing import Dict, List, Optional

from pydantic import BaseModel

from delegation_kernel.models.task import TaskPriority


class WorkflowDefinition(BaseModel):
    """A named sequence of steps with declared prerequisites."""

    name: str
    steps: List[str]
    dependencies: Dict[str, List[str]] = {}  # step -> prerequisite steps
    priority: TaskPriority = TaskPriority.MEDIUM

    def prerequisites(self, step: str) -> List[str]:
        return self.dependencies.get(step, [])


class StepDelegation(BaseModel):
    """Outcome of delegating one workflow step."""

    task_id: Optional[str] = None
    status: str                             # "delegated" | "blocked" | "failed"
    error: Optional[str] = None
