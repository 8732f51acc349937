"""Tests for the Knowledge Store."""

import pytest

from delegation_kernel.knowledge.storage import FallbackStorage, LocalStorage
from delegation_kernel.knowledge.store import (
    SEED_SOURCE,
    KnowledgeStore,
    extract_tags,
    find_relationships,
)
from delegation_kernel.models import AccessType, ConflictPolicy, KnowledgeConfig


def _store(**config) -> KnowledgeStore:
    return KnowledgeStore(
        storage=FallbackStorage(local=LocalStorage()),
        config=KnowledgeConfig(**config),
    )


class TestStoreAndRetrieve:
    def setup_method(self):
        self.knowledge = _store()

    def test_round_trip(self):
        entry_id = self.knowledge.store("prefs", "u1", {"mode": "visual"}, "w1", 0.8)

        assert entry_id == "prefs:u1"
        assert self.knowledge.retrieve("prefs", "u1", "w2") == {"mode": "visual"}

    def test_missing_entry_returns_none(self):
        assert self.knowledge.retrieve("prefs", "nobody") is None
        last = self.knowledge.recent_accesses(1)[0]
        assert last.context["found"] is False

    def test_retrieve_counts_access(self):
        self.knowledge.store("prefs", "u1", "x")
        self.knowledge.retrieve("prefs", "u1")
        self.knowledge.retrieve("prefs", "u1")
        assert self.knowledge.get_entry("prefs", "u1").access_count == 2

    def test_overwrite_keeps_created_at_and_access_count(self):
        self.knowledge.store("prefs", "u1", "first")
        self.knowledge.retrieve("prefs", "u1")
        original = self.knowledge.get_entry("prefs", "u1")

        self.knowledge.store("prefs", "u1", "second", "w9", 0.4)
        updated = self.knowledge.get_entry("prefs", "u1")

        assert updated.value == "second"
        assert updated.source_agent == "w9"
        assert updated.created_at == original.created_at
        assert updated.access_count == 1

    def test_confidence_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            self.knowledge.store("prefs", "u1", "x", confidence=1.2)

    def test_tags_and_relationships_derived(self):
        self.knowledge.store("prefs", "u1", {"mode": "visual_first", "level": 3})
        entry = self.knowledge.get_entry("prefs", "u1")

        assert "mode" in entry.tags
        assert "visual_first" in entry.tags
        assert entry.relationships["references"] == ["visual_first"]
        assert entry.relationships["category_peers"] == ["prefs"]


class TestConflictPolicy:
    def test_last_write_wins_by_default(self):
        knowledge = _store()
        knowledge.store("facts", "k", "confident", confidence=0.9)
        knowledge.store("facts", "k", "hesitant", confidence=0.2)
        assert knowledge.retrieve("facts", "k") == "hesitant"

    def test_highest_confidence_keeps_existing(self):
        knowledge = _store(conflict_policy=ConflictPolicy.HIGHEST_CONFIDENCE)
        knowledge.store("facts", "k", "confident", confidence=0.9)
        knowledge.store("facts", "k", "hesitant", confidence=0.2)

        assert knowledge.retrieve("facts", "k") == "confident"
        kept = [a for a in knowledge.recent_accesses(10) if a.context.get("kept_existing")]
        assert len(kept) == 1

    def test_rejected_seed_write_is_not_logged(self):
        knowledge = _store(conflict_policy=ConflictPolicy.HIGHEST_CONFIDENCE)
        knowledge.store("core", "k", "curated", confidence=1.0)
        before = knowledge.access_log_size

        knowledge.store("core", "k", "seeded", SEED_SOURCE, confidence=0.5)

        assert knowledge.retrieve("core", "k") == "curated"
        assert knowledge.access_log_size == before + 1  # only the retrieve

    def test_highest_confidence_accepts_equal_or_better(self):
        knowledge = _store(conflict_policy=ConflictPolicy.HIGHEST_CONFIDENCE)
        knowledge.store("facts", "k", "old", confidence=0.5)
        knowledge.store("facts", "k", "new", confidence=0.5)
        assert knowledge.retrieve("facts", "k") == "new"


class TestQuery:
    def test_orders_by_confidence_then_access(self):
        knowledge = _store()
        knowledge.store("lessons", "algebra", "intro", confidence=0.5)
        knowledge.store("lessons", "algebra-2", "advanced", confidence=0.9)
        knowledge.store("lessons", "algebra-3", "review", confidence=0.5)
        knowledge.retrieve("lessons", "algebra-3")

        results = knowledge.query("algebra")
        assert [e.key for e in results] == ["algebra-2", "algebra-3", "algebra"]

    def test_result_cap(self):
        knowledge = _store(query_limit=3)
        for i in range(6):
            knowledge.store("bulk", f"item-{i}", i)
        assert len(knowledge.query("item")) == 3

    def test_non_ascii_value_is_found(self):
        knowledge = _store()
        knowledge.store("notes", "greeting", "café au lait")
        knowledge.store("notes", "other", "black coffee")

        assert [e.id for e in knowledge.query("café")] == ["notes:greeting"]
        assert knowledge.retrieve("notes", "greeting") == "café au lait"

    def test_wildcard_characters_are_literal(self):
        knowledge = _store()
        knowledge.store("misc", "a_b", 1)
        knowledge.store("misc", "axb", 2)
        knowledge.store("misc", "100%", 3)
        knowledge.store("misc", "1000", 4)

        assert [e.id for e in knowledge.query("a_b")] == ["misc:a_b"]
        assert [e.id for e in knowledge.query("0%")] == ["misc:100%"]

    def test_query_is_logged_with_count(self):
        knowledge = _store()
        knowledge.store("bulk", "item", 1)
        knowledge.query("item", "w1")

        last = knowledge.recent_accesses(1)[0]
        assert last.access_type == AccessType.QUERY
        assert last.knowledge_key == "query:item"
        assert last.context["results_count"] == 1


class TestAccessLog:
    def test_log_is_capped(self):
        knowledge = _store(access_log_limit=5)
        for i in range(8):
            knowledge.retrieve("c", f"k{i}")

        assert knowledge.access_log_size == 5
        assert knowledge.recent_accesses(10)[0].knowledge_key == "c:k3"

    def test_accesses_mirrored_to_activity_log(self):
        knowledge = _store()
        knowledge.store("c", "k", 1, "w1")
        assert knowledge.storage.count("activity_logs", {"agent_id": "w1"}) == 1

    def test_mirror_failure_does_not_break_reads(self):
        knowledge = _store()
        knowledge.store("c", "k", 1)

        original = knowledge.storage.upsert

        def failing_upsert(table, record):
            if table == "activity_logs":
                raise RuntimeError("log sink down")
            original(table, record)

        knowledge.storage.upsert = failing_upsert
        assert knowledge.retrieve("c", "k") == 1


class TestSeeding:
    def test_seed_flattens_nested_categories(self):
        knowledge = _store()
        count = knowledge.seed({
            "domain": {
                "area": {"leaf": {"flag": True}},
                "direct": {"setting": "on"},
            },
            "scalar": 7,
        })

        assert count == 3
        assert knowledge.retrieve("domain.area", "leaf") == {"flag": True}
        assert knowledge.retrieve("domain", "direct") == {"setting": "on"}
        assert knowledge.retrieve("core", "scalar") == 7

    def test_seed_is_not_logged(self):
        knowledge = _store()
        knowledge.seed_core_knowledge()

        assert knowledge.access_log_size == 0
        entry = knowledge.get_entry("neurodiverse_learning", "cognitive_patterns")
        assert entry.source_agent == SEED_SOURCE
        assert entry.value["routine_importance"] == "critical"


class TestRelatedKnowledge:
    def test_category_peers_and_references(self):
        knowledge = _store()
        knowledge.store("styles", "u1", {"preferred": "visual_first"})
        knowledge.store("styles", "u2", {"preferred": "audio"})
        knowledge.store("modes", "visual_first", {"contrast": "high"})

        related = knowledge.get_related_knowledge("styles", "u1")
        by_type = {(r["type"], r["target"]) for r in related}

        assert ("category_peers", "styles:u2") in by_type
        assert ("references", "modes:visual_first") in by_type
        assert all(r["target"] != "styles:u1" for r in related)

    def test_unknown_entry_has_no_relations(self):
        assert _store().get_related_knowledge("none", "none") == []

    def test_overwrite_replaces_references(self):
        knowledge = _store()
        knowledge.store("core", "old_target", "x")
        knowledge.store("docs", "d1", {"link": "old_target"})
        knowledge.store("docs", "d1", {"link": "plain"})

        related = knowledge.get_related_knowledge("docs", "d1")
        assert knowledge.get_entry("docs", "d1").relationships == {"category_peers": ["docs"]}
        assert all(r["type"] != "references" for r in related)

    def test_relations_survive_reopening(self, tmp_path):
        path = str(tmp_path / "knowledge.db")
        first = KnowledgeStore(storage=FallbackStorage(local=LocalStorage(path)))
        first.store("styles", "u1", {"preferred": "visual_first"})
        first.store("modes", "visual_first", {"contrast": "high"})
        first.storage.local.close()

        reopened = KnowledgeStore(storage=FallbackStorage(local=LocalStorage(path)))
        related = reopened.get_related_knowledge("styles", "u1")

        assert {"type": "references", "target": "modes:visual_first",
                "knowledge": {"contrast": "high"}} in related


class TestMemoryAndPatterns:
    def test_agent_memory_ordering_and_filter(self):
        knowledge = _store()
        knowledge.store_agent_memory("w1", "communication", {"n": 1}, priority=5)
        knowledge.store_agent_memory("w1", "communication", {"n": 2}, priority=10)
        knowledge.store_agent_memory("w1", "observation", {"n": 3}, priority=7)
        knowledge.store_agent_memory("w2", "communication", {"n": 4})

        memories = knowledge.retrieve_agent_memory("w1")
        assert [m.memory_data["n"] for m in memories] == [2, 3, 1]

        comms = knowledge.retrieve_agent_memory("w1", "communication")
        assert [m.memory_data["n"] for m in comms] == [2, 1]

    def test_learning_patterns_by_effectiveness(self):
        knowledge = _store()
        knowledge.store_learning_pattern("u1", "pacing", {"speed": "slow"}, 0.3)
        knowledge.store_learning_pattern("u1", "pacing", {"speed": "fast"}, 0.8)

        patterns = knowledge.retrieve_learning_patterns("u1")
        assert [p.pattern_data["speed"] for p in patterns] == ["fast", "slow"]
        assert knowledge.retrieve_learning_patterns("u2") == []


class TestRemoteFallback:
    def test_outage_is_transparent(self, fallback_storage, fake_remote):
        knowledge = KnowledgeStore(storage=fallback_storage)
        fake_remote.available = False

        knowledge.store("c", "k", {"v": 1}, "w1")
        assert knowledge.retrieve("c", "k") == {"v": 1}
        assert knowledge.get_stats()["storage_degraded"] is True

    def test_local_writes_visible_after_recovery(self, fallback_storage, fake_remote):
        knowledge = KnowledgeStore(storage=fallback_storage)
        fake_remote.available = False
        knowledge.store("c", "k", "offline")
        fake_remote.available = True

        assert knowledge.retrieve("c", "k") == "offline"
        assert knowledge.get_entry("c", "k").access_count == 1

    def test_healthy_remote_holds_entries(self, fallback_storage, fake_remote):
        knowledge = KnowledgeStore(storage=fallback_storage)
        knowledge.store("c", "k", "online")

        assert "c:k" in fake_remote.tables["knowledge_base"]
        assert knowledge.retrieve("c", "k") == "online"
        assert [e.key for e in knowledge.query("onl")] == ["k"]


    def test_malformed_remote_body_is_absorbed(self, fallback_storage, fake_remote):
        knowledge = KnowledgeStore(storage=fallback_storage)
        fake_remote.available = False
        knowledge.store("core", "x", "kept locally", "w1")
        fake_remote.available = True
        fake_remote.garbled_body = "<html>maintenance</html>"

        assert knowledge.retrieve("core", "x", "w1") == "kept locally"
        assert knowledge.retrieve("core", "missing", "w1") is None
        assert [e.key for e in knowledge.query("kept")] == ["x"]


class TestStats:
    def test_counts(self):
        knowledge = _store()
        knowledge.store("a", "1", 1)
        knowledge.store("b", "1", 1)
        knowledge.store_agent_memory("w1", "note", {})

        stats = knowledge.get_stats()
        assert stats["total_entries"] == 2
        assert stats["categories"] == 2
        assert stats["agent_memories"] == 1
        assert stats["knowledge_graph_nodes"] == 2
        assert stats["storage_degraded"] is True  # local-only mode


def test_extract_tags_from_text():
    assert extract_tags("a short note about fractions") == ["short", "note", "about", "fractions"]


def test_find_relationships_for_scalar():
    assert find_relationships("c", 5) == {"category_peers": ["c"]}
