"""
Workflow Engine — expands named multi-step recipes into delegated tasks.

A step is delegated once every prerequisite has been delegated in the same
run. "Delegated" means queued, not finished: a step may start before its
prerequisite completes. Steps are visited in declaration order, in repeated
passes, so the outcome does not depend on how the steps are ordered.
"""

import logging
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from delegation_kernel.dispatch.dispatcher import Dispatcher, NoCapableWorker
from delegation_kernel.models.workflow import StepDelegation, WorkflowDefinition

logger = logging.getLogger(__name__)

DELEGATED = "delegated"
BLOCKED = "blocked"
FAILED = "failed"

DEFAULT_WORKFLOWS: List[WorkflowDefinition] = [
    WorkflowDefinition(
        name="student-onboarding",
        steps=["assess-baseline", "create-profile", "generate-initial-content"],
        dependencies={"create-profile": ["assess-baseline"]},
    ),
    WorkflowDefinition(
        name="adaptive-learning-session",
        steps=["monitor-engagement", "adjust-difficulty", "provide-feedback"],
        dependencies={"adjust-difficulty": ["monitor-engagement"]},
    ),
]


class WorkflowNotFound(Exception):
    """Raised when executing a workflow that was never registered."""
    pass


class WorkflowEngine:
    """Static workflow definitions executed through the dispatcher."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        definitions: Optional[Iterable[WorkflowDefinition]] = None,
    ):
        self.dispatcher = dispatcher
        self._workflows: Dict[str, WorkflowDefinition] = {}
        for definition in DEFAULT_WORKFLOWS if definitions is None else definitions:
            self.register(definition)

    def register(self, definition: WorkflowDefinition) -> None:
        self._workflows[definition.name] = definition

    def get(self, name: str) -> Optional[WorkflowDefinition]:
        return self._workflows.get(name)

    def names(self) -> List[str]:
        return list(self._workflows)

    def execute(
        self, name: str, parameters: Optional[dict] = None
    ) -> Dict[str, StepDelegation]:
        """
        Delegate every step whose prerequisites have been delegated.

        Steps whose prerequisites never get queued (failed, missing or
        cyclic) are reported as blocked.
        """
        workflow = self._workflows.get(name)
        if workflow is None:
            raise WorkflowNotFound(f"Workflow not found: {name}")

        run_id = f"run-{uuid4().hex[:12]}"
        results: Dict[str, StepDelegation] = {}
        delegated = set()

        progressed = True
        while progressed:
            progressed = False
            for step in workflow.steps:
                if step in results:
                    continue
                if not all(dep in delegated for dep in workflow.prerequisites(step)):
                    continue

                try:
                    task_id = self.dispatcher.delegate(
                        step,
                        parameters,
                        workflow.priority,
                        workflow_run_id=run_id,
                    )
                except NoCapableWorker as e:
                    results[step] = StepDelegation(status=FAILED, error=str(e))
                    logger.warning("Workflow %s step %s not delegated: %s",
                                   name, step, e)
                else:
                    results[step] = StepDelegation(task_id=task_id, status=DELEGATED)
                    delegated.add(step)
                progressed = True

        for step in workflow.steps:
            if step not in results:
                missing = [
                    dep for dep in workflow.prerequisites(step) if dep not in delegated
                ]
                results[step] = StepDelegation(
                    status=BLOCKED,
                    error=f"Unsatisfied prerequisites: {', '.join(missing)}",
                )

        logger.info(
            "Workflow %s (%s): %d/%d steps delegated",
            name, run_id, len(delegated), len(workflow.steps),
        )
        return {step: results[step] for step in workflow.steps}
