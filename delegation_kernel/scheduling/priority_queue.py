"""
Priority Queue — four strictly ordered lanes of pending tasks.

Behavioral Contract:
- enqueue() appends to the lane matching the task's priority (unknown → medium)
- dequeue() drains lanes in order critical → high → medium → low
- No lower-priority task is returned while a higher lane is non-empty
- FIFO within a lane; no other ordering guarantee
"""

import threading
from collections import deque
from typing import Deque, Dict, Optional

from delegation_kernel.models.task import PRIORITY_ORDER, Task, TaskPriority


class PriorityQueue:
    """Lane-exhaustive priority queue. All operations are total and non-blocking."""

    def __init__(self):
        self._lanes: Dict[TaskPriority, Deque[Task]] = {
            priority: deque() for priority in PRIORITY_ORDER
        }
        self._lock = threading.Lock()

    def enqueue(self, task: Task) -> None:
        lane = TaskPriority.coerce(task.priority)
        with self._lock:
            self._lanes[lane].append(task)

    def dequeue(self) -> Optional[Task]:
        """Remove and return the next task, or None when every lane is empty."""
        with self._lock:
            for priority in PRIORITY_ORDER:
                lane = self._lanes[priority]
                if lane:
                    return lane.popleft()
        return None

    def size(self) -> int:
        with self._lock:
            return sum(len(lane) for lane in self._lanes.values())

    def has_work(self) -> bool:
        return self.size() > 0

    def lane_sizes(self) -> Dict[str, int]:
        """Per-lane depth snapshot."""
        with self._lock:
            return {p.value: len(self._lanes[p]) for p in PRIORITY_ORDER}

    def __len__(self) -> int:
        return self.size()
