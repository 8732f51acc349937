"""Default worker fleet deployed at startup."""

from typing import List

from delegation_kernel.models.worker import PriorityClass, WorkerSpec

DEFAULT_FLEET: List[WorkerSpec] = [
    WorkerSpec(
        id="learning-coordinator",
        name="Learning Coordinator",
        type="educational-coordination",
        capabilities=[
            "lesson-planning",
            "progress-tracking",
            "adaptive-content",
            "profile-management",
        ],
        specialization="neurodiverse-learning",
        priority=PriorityClass.CRITICAL,
    ),
    WorkerSpec(
        id="behavior-analyst",
        name="Behavior Pattern Analyst",
        type="educational-support",
        capabilities=[
            "pattern-recognition",
            "behavioral-analysis",
            "intervention-planning",
        ],
        specialization="autism-support",
        priority=PriorityClass.HIGH,
    ),
    WorkerSpec(
        id="content-generator",
        name="Adaptive Content Creator",
        type="educational-curriculum",
        capabilities=[
            "content-creation",
            "difficulty-adaptation",
            "sensory-optimization",
            "feedback-delivery",
        ],
        specialization="accessible-content",
        priority=PriorityClass.MEDIUM,
    ),
    WorkerSpec(
        id="progress-monitor",
        name="Student Progress Monitor",
        type="educational-student",
        capabilities=[
            "progress-tracking",
            "assessment",
            "reporting",
            "engagement-monitoring",
        ],
        specialization="individual-monitoring",
        priority=PriorityClass.HIGH,
    ),
    WorkerSpec(
        id="communication-router",
        name="Communication Router",
        type="communication-router",
        capabilities=["message-routing", "priority-handling", "broadcast-management"],
        specialization="system-communication",
        priority=PriorityClass.CRITICAL,
    ),
    WorkerSpec(
        id="error-handler",
        name="Error Handler",
        type="error-handler",
        capabilities=["error-detection", "auto-recovery", "user-notification"],
        specialization="system-stability",
        priority=PriorityClass.CRITICAL,
    ),
]
