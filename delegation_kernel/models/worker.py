"""Worker Model — capability-tagged executors and their lifecycle."""

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

MIN_EFFICIENCY = 0.1
MAX_EFFICIENCY = 1.0


class WorkerStatus(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    PROCESSING = "processing"
    IDLE = "idle"
    STANDBY = "standby"
    ERROR = "error"


# Parked or not-yet-activated workers are never selected by the dispatcher.
UNDISPATCHABLE_STATUSES = frozenset(
    {WorkerStatus.INITIALIZING, WorkerStatus.IDLE, WorkerStatus.STANDBY}
)


class PriorityClass(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WorkerSpec(BaseModel):
    """Registration input for a worker."""

    id: str
    name: str
    type: str                               # e.g., "educational-support"
    capabilities: List[str]
    specialization: str = ""
    priority: PriorityClass = PriorityClass.MEDIUM


class Worker(BaseModel):
    """A registered worker with its running efficiency and task history."""

    id: str
    name: str
    type: str
    capabilities: List[str]
    specialization: str = ""
    priority: PriorityClass = PriorityClass.MEDIUM
    status: WorkerStatus = WorkerStatus.INITIALIZING
    efficiency_score: float = Field(
        ge=MIN_EFFICIENCY, le=MAX_EFFICIENCY, default=MAX_EFFICIENCY
    )
    task_history: List[str] = []            # Completed task IDs, oldest first
    registered_at: datetime
    updated_at: datetime

    @property
    def memory_allocated(self) -> int:
        """Memory budget in MB: a base allotment plus a share per capability."""
        return 512 + len(self.capabilities) * 128

    def to_record(self) -> dict:
        """Flat record for the `agents` table."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status.value,
            "config": {
                "capabilities": self.capabilities,
                "specialization": self.specialization,
                "priority": self.priority.value,
            },
            "memory_allocated": self.memory_allocated,
            "updated_at": self.updated_at.isoformat(),
        }
