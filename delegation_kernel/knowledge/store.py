"""
Knowledge Store — persists task outcomes and category/key facts.

Behavioral Contract:
- Entry identity is "<category>:<key>"; the same pair always names the same fact
- Writes go to the remote backend first and fall back to local storage;
  backend outages are never raised to callers
- Every store/retrieve/query is recorded in an in-memory access log (capped)
  and mirrored best-effort to the activity log table; bulk seeding is not logged
- Tags and relationship edges are derived from each stored value
- Entries are never deleted
"""

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional
from uuid import uuid4

from delegation_kernel.knowledge.seed import CORE_KNOWLEDGE
from delegation_kernel.knowledge.storage import FallbackStorage, LocalStorage
from delegation_kernel.models.knowledge import (
    AccessLogEntry,
    AccessType,
    AgentMemory,
    KnowledgeEntry,
    LearningPattern,
    knowledge_id,
)
from delegation_kernel.models.runtime import ConflictPolicy, KnowledgeConfig

logger = logging.getLogger(__name__)

SEED_SOURCE = "system-init"

_SEARCH_COLUMNS = ("category", "key", "value")
_QUERY_ORDER = (("confidence_score", True), ("access_count", True))


def extract_tags(value: Any) -> List[str]:
    """Keys and short string values of a mapping, or the longer words of a string."""
    tags: List[str] = []
    if isinstance(value, dict):
        for k, v in value.items():
            tags.append(str(k))
            if isinstance(v, str) and len(v) < 50:
                tags.append(v)
    elif isinstance(value, str):
        tags.extend([w for w in value.split() if len(w) > 3][:5])
    return list(dict.fromkeys(tags))


def find_relationships(category: str, value: Any) -> Dict[str, List[str]]:
    """Underscored string values read as references; every entry has category peers."""
    relationships: Dict[str, List[str]] = {}
    if isinstance(value, dict):
        references = [v for v in value.values() if isinstance(v, str) and "_" in v]
        if references:
            relationships["references"] = sorted(set(references))
    relationships["category_peers"] = [category]
    return relationships


class KnowledgeStore:
    """
    Dual-backend knowledge base with an access log and a relationship graph.
    """

    def __init__(
        self,
        storage: Optional[FallbackStorage] = None,
        config: Optional[KnowledgeConfig] = None,
    ):
        self.storage = storage or FallbackStorage(local=LocalStorage())
        self.config = config or KnowledgeConfig()
        self._access_log: Deque[AccessLogEntry] = deque(
            maxlen=self.config.access_log_limit
        )
        self._lock = threading.Lock()

    # --- Core knowledge operations ---

    def store(
        self,
        category: str,
        key: str,
        value: Any,
        source_id: str = "system",
        confidence: float = 1.0,
    ) -> str:
        """Store a fact and return its ID."""
        if not 0 <= confidence <= 1:
            raise ValueError(f"confidence must be within [0, 1], got {confidence}")

        entry_id = knowledge_id(category, key)
        now = datetime.now(timezone.utc)
        existing = self._load_entry(entry_id)

        if (
            existing is not None
            and self.config.conflict_policy == ConflictPolicy.HIGHEST_CONFIDENCE
            and existing.confidence_score > confidence
        ):
            logger.info(
                "Kept %s: existing confidence %.2f beats %.2f from %s",
                entry_id, existing.confidence_score, confidence, source_id,
            )
            if source_id != SEED_SOURCE:
                self._log_access(source_id, entry_id, AccessType.STORE, {
                    "confidence": confidence,
                    "kept_existing": True,
                })
            return entry_id

        relationships = find_relationships(category, value)
        entry = KnowledgeEntry(
            id=entry_id,
            category=category,
            key=key,
            value=value,
            confidence_score=confidence,
            source_agent=source_id,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            access_count=existing.access_count if existing else 0,
            tags=extract_tags(value),
            relationships=relationships,
        )
        self.storage.upsert("knowledge_base", entry.model_dump(mode="json"))

        if source_id != SEED_SOURCE:
            self._log_access(source_id, entry_id, AccessType.STORE, {
                "confidence": confidence,
            })
        return entry_id

    def retrieve(self, category: str, key: str, requester_id: str = "unknown") -> Any:
        """Return the stored value, or None. Counts the access on a hit."""
        entry_id = knowledge_id(category, key)
        entry = self._load_entry(entry_id)
        if entry is not None:
            self.storage.increment("knowledge_base", entry_id, "access_count")

        self._log_access(requester_id, entry_id, AccessType.RETRIEVE, {
            "found": entry is not None,
            "confidence": entry.confidence_score if entry else None,
        })
        return entry.value if entry else None

    def get_entry(self, category: str, key: str) -> Optional[KnowledgeEntry]:
        """Full entry without counting or logging the access."""
        return self._load_entry(knowledge_id(category, key))

    def query(self, term: str, requester_id: str = "unknown") -> List[KnowledgeEntry]:
        """Substring search over category, key and value, best confidence first."""
        rows = self.storage.search(
            "knowledge_base",
            term,
            _SEARCH_COLUMNS,
            order_by=_QUERY_ORDER,
            limit=self.config.query_limit,
        )
        results = [KnowledgeEntry.model_validate(r) for r in rows]
        results.sort(key=lambda e: (e.confidence_score, e.access_count), reverse=True)
        results = results[: self.config.query_limit]

        self._log_access(requester_id, f"query:{term}", AccessType.QUERY, {
            "results_count": len(results),
        })
        return results

    # --- Agent memory ---

    def store_agent_memory(
        self,
        agent_id: str,
        memory_type: str,
        memory_data: Any,
        priority: int = 5,
    ) -> str:
        now = datetime.now(timezone.utc)
        memory = AgentMemory(
            id=f"memory-{uuid4().hex[:16]}",
            agent_id=agent_id,
            memory_type=memory_type,
            memory_data=memory_data,
            priority=priority,
            created_at=now,
            last_accessed=now,
        )
        self.storage.upsert("agent_memory", memory.model_dump(mode="json"))
        return memory.id

    def retrieve_agent_memory(
        self, agent_id: str, memory_type: Optional[str] = None
    ) -> List[AgentMemory]:
        """Memories for a worker, highest priority first, then most recent."""
        filters = {"agent_id": agent_id}
        if memory_type:
            filters["memory_type"] = memory_type
        rows = self.storage.select(
            "agent_memory",
            filters,
            order_by=(("priority", True), ("last_accessed", True)),
        )
        return [AgentMemory.model_validate(r) for r in rows]

    # --- Learning patterns ---

    def store_learning_pattern(
        self,
        user_id: str,
        pattern_type: str,
        pattern_data: Any,
        effectiveness: float = 0.5,
    ) -> str:
        now = datetime.now(timezone.utc)
        pattern = LearningPattern(
            id=f"pattern-{uuid4().hex[:16]}",
            user_id=user_id,
            pattern_type=pattern_type,
            pattern_data=pattern_data,
            effectiveness_score=effectiveness,
            created_at=now,
            updated_at=now,
        )
        self.storage.upsert("learning_patterns", pattern.model_dump(mode="json"))
        return pattern.id

    def retrieve_learning_patterns(
        self, user_id: str, pattern_type: Optional[str] = None
    ) -> List[LearningPattern]:
        """Patterns for a user, most effective first."""
        filters = {"user_id": user_id}
        if pattern_type:
            filters["pattern_type"] = pattern_type
        rows = self.storage.select(
            "learning_patterns",
            filters,
            order_by=(("effectiveness_score", True),),
        )
        return [LearningPattern.model_validate(r) for r in rows]

    # --- Relationship graph ---

    def get_related_knowledge(self, category: str, key: str) -> List[dict]:
        """
        Resolve the relationship edges stored on an entry.

        References resolve to entries with that key; category peers resolve
        to the other entries of the category.
        """
        entry_id = knowledge_id(category, key)
        entry = self._load_entry(entry_id)
        if entry is None:
            return []

        related = []
        for rel_type, targets in sorted(entry.relationships.items()):
            for target in sorted(targets):
                if rel_type == "category_peers":
                    rows = self.storage.select("knowledge_base", {"category": target})
                    rows = [r for r in rows if r["id"] != entry_id]
                else:
                    rows = self.storage.select("knowledge_base", {"key": target}, limit=1)
                for row in rows:
                    related.append({
                        "type": rel_type,
                        "target": row["id"],
                        "knowledge": row["value"],
                    })
        return related

    # --- Access log & stats ---

    def recent_accesses(self, limit: int = 10) -> List[AccessLogEntry]:
        with self._lock:
            return list(self._access_log)[-limit:]

    @property
    def access_log_size(self) -> int:
        return len(self._access_log)

    def get_stats(self) -> dict:
        entries = self.storage.select("knowledge_base")
        return {
            "total_entries": len(entries),
            "categories": len({e["category"] for e in entries}),
            "agent_memories": self.storage.count("agent_memory"),
            "learning_patterns": self.storage.count("learning_patterns"),
            "recent_accesses": [
                a.model_dump(mode="json") for a in self.recent_accesses(10)
            ],
            "knowledge_graph_nodes": sum(1 for e in entries if e.get("relationships")),
            "storage_degraded": self.storage.degraded,
        }

    # --- Seeding ---

    def seed(self, structure: dict, parent_category: str = "") -> int:
        """
        Bulk-insert a nested knowledge tree. Returns the number of entries stored.

        A mapping whose children include any non-mapping value is an entry;
        a mapping of mappings is a nested category ("parent.child").
        """
        stored = 0
        for key, value in structure.items():
            category = f"{parent_category}.{key}" if parent_category else key
            target_category = parent_category or "core"
            if isinstance(value, dict):
                has_data = any(not isinstance(v, dict) for v in value.values())
                if has_data:
                    self.store(target_category, key, value, SEED_SOURCE, 1.0)
                    stored += 1
                else:
                    stored += self.seed(value, category)
            else:
                self.store(target_category, key, value, SEED_SOURCE, 1.0)
                stored += 1
        return stored

    def seed_core_knowledge(self) -> int:
        count = self.seed(CORE_KNOWLEDGE)
        logger.info("Seeded %d core knowledge entries", count)
        return count

    # --- Internals ---

    def _load_entry(self, entry_id: str) -> Optional[KnowledgeEntry]:
        rows = self.storage.select("knowledge_base", {"id": entry_id}, limit=1)
        if not rows:
            return None
        return KnowledgeEntry.model_validate(rows[0])

    def _log_access(
        self,
        agent_id: str,
        knowledge_key: str,
        access_type: AccessType,
        context: Optional[dict] = None,
    ) -> None:
        entry = AccessLogEntry(
            id=f"log-{uuid4().hex[:16]}",
            agent_id=agent_id or "unknown",
            knowledge_key=knowledge_key,
            access_type=access_type,
            timestamp=datetime.now(timezone.utc),
            context=context or {},
        )
        with self._lock:
            self._access_log.append(entry)

        # Log sink failures never affect control flow.
        try:
            self.storage.upsert("activity_logs", {
                "id": entry.id,
                "agent_id": entry.agent_id,
                "activity": f"knowledge_{access_type.value}",
                "details": {"knowledge_key": knowledge_key, "context": entry.context},
                "timestamp": entry.timestamp.isoformat(),
            })
        except Exception as e:
            logger.debug("Access log mirror failed for %s: %s", knowledge_key, e)
