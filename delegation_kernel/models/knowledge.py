"""Knowledge Model — confidence-scored facts, agent memories, learning patterns."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


def knowledge_id(category: str, key: str) -> str:
    """Entry identity is derived purely from (category, key)."""
    return f"{category}:{key}"


class KnowledgeEntry(BaseModel):
    """A single fact in the knowledge base."""

    id: str                                 # "<category>:<key>"
    category: str
    key: str
    value: Any
    confidence_score: float = Field(ge=0, le=1, default=1.0)
    source_agent: str = "system"
    created_at: datetime
    updated_at: datetime
    access_count: int = 0
    tags: List[str] = []
    relationships: Dict[str, List[str]] = {}  # relation type -> target ids


class AccessType(str, Enum):
    STORE = "store"
    RETRIEVE = "retrieve"
    QUERY = "query"


class AccessLogEntry(BaseModel):
    """One read or write against the knowledge base."""

    id: str
    agent_id: str
    knowledge_key: str
    access_type: AccessType
    timestamp: datetime
    context: dict = {}


class AgentMemory(BaseModel):
    """Working memory recorded by a worker."""

    id: str
    agent_id: str
    memory_type: str                        # e.g., "communication"
    memory_data: Any
    priority: int = 5
    created_at: datetime
    last_accessed: datetime
    access_frequency: int = 1


class LearningPattern(BaseModel):
    """An observed learning pattern for a user, scored by effectiveness."""

    id: str
    user_id: str
    pattern_type: str
    pattern_data: Any
    effectiveness_score: float = Field(ge=0, le=1, default=0.5)
    usage_count: int = 1
    created_at: datetime
    updated_at: datetime
