"""
Task handlers — the domain-specific work behind each task type.

A handler is a callable taking the task parameters and returning a JSON-able
result; it may be a plain function or a coroutine function. Raising marks
the task failed.
"""

import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

Handler = Callable[[dict], Any]


class HandlerRegistry:
    """
    Maps task types to handlers. Types without a handler fall through to
    a generic acknowledgement.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._handlers: Dict[str, Handler] = {}
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        """Register the built-in educational handlers."""
        self._handlers["assess-learning-progress"] = self._assess_learning_progress
        self._handlers["generate-adaptive-content"] = self._generate_adaptive_content
        self._handlers["analyze-behavior-patterns"] = self._analyze_behavior_patterns
        self._handlers["create-lesson-plan"] = self._create_lesson_plan
        self._handlers["monitor-student-engagement"] = self._monitor_student_engagement

    def register(self, task_type: str, handler: Handler) -> None:
        """Register a custom handler for a task type."""
        self._handlers[task_type] = handler

    def resolve(self, task_type: str) -> Handler:
        handler = self._handlers.get(task_type)
        if handler is not None:
            return handler
        return lambda parameters: {
            "status": "completed",
            "message": f"Task {task_type} executed successfully",
        }

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._handlers

    # --- Built-in handlers ---

    def _assess_learning_progress(self, params: dict) -> dict:
        return {
            "studentId": params.get("studentId"),
            "currentLevel": self._rng.randint(1, 10),
            "strengths": ["visual learning", "pattern recognition"],
            "challenges": ["auditory processing", "time management"],
            "recommendations": [
                "Use more visual aids",
                "Break tasks into smaller steps",
            ],
            "confidence": 0.85,
        }

    def _generate_adaptive_content(self, params: dict) -> dict:
        return {
            "contentId": f"content-{uuid4().hex[:12]}",
            "difficulty": params.get("targetDifficulty", "medium"),
            "format": "interactive",
            "sensoryOptimizations": {
                "visualContrast": "high",
                "audioEnabled": False,
                "animationSpeed": "slow",
            },
            "estimatedDuration": "15 minutes",
        }

    def _analyze_behavior_patterns(self, params: dict) -> dict:
        return {
            "patterns": [
                {"type": "engagement", "trend": "increasing", "confidence": 0.9},
                {"type": "attention_span", "average": "12 minutes", "trend": "stable"},
                {"type": "preferred_modality", "value": "visual", "confidence": 0.8},
            ],
            "recommendations": [
                "Continue with visual-heavy content",
                "Consider 10-minute learning blocks",
            ],
        }

    def _create_lesson_plan(self, params: dict) -> dict:
        return {
            "lessonId": f"lesson-{uuid4().hex[:12]}",
            "title": params.get("topic") or "Adaptive Learning Session",
            "duration": "20 minutes",
            "activities": [
                {"type": "introduction", "duration": "3 minutes"},
                {"type": "main_content", "duration": "12 minutes"},
                {"type": "practice", "duration": "5 minutes"},
            ],
            "adaptations": {
                "sensoryFriendly": True,
                "selfPaced": True,
                "visualSupports": True,
            },
        }

    def _monitor_student_engagement(self, params: dict) -> dict:
        return {
            "engagementLevel": round(self._rng.uniform(0.6, 1.0), 3),
            "attentionSpan": self._rng.randint(8, 18),
            "interactionCount": self._rng.randint(5, 25),
            "needsSupport": self._rng.random() < 0.3,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
