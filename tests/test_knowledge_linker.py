"""Tests for smart_codebase.knowledge.linker - relationship detection and write-back."""

import json
import logging
from unittest.mock import patch

import pytest

from smart_codebase.knowledge import linker
from smart_codebase.knowledge.artifacts import load_graph
from smart_codebase.knowledge.linker import (
    citation_overlap,
    is_related,
    keyword_overlap,
    learn_fact,
    link_fact,
    relink_all,
)
from smart_codebase.knowledge.loader import load_knowledge
from smart_codebase.knowledge.models import MAX_RELATED_FACTS, Fact, GraphEdge
from smart_codebase.knowledge.paths import graph_path, knowledge_dir
from smart_codebase.knowledge.writer import append_fact


def _fact(fact_id, keywords=(), citations=(), related=()):
    return Fact(
        id=fact_id,
        subject=f"Subject {fact_id}",
        fact=f"Body {fact_id}",
        keywords=list(keywords),
        citations=list(citations),
        related_facts=list(related),
    )


def _stored(directory, fact_id):
    return next(f for f in load_knowledge(directory) if f.id == fact_id)


class TestOverlapRules:
    def test_keyword_overlap_counts_shared(self):
        a = _fact("a", keywords=["order", "status", "update"])
        b = _fact("b", keywords=["order", "status"])
        assert keyword_overlap(a, b) == 2
        assert is_related(a, b)

    def test_single_shared_keyword_not_related(self):
        a = _fact("a", keywords=["order", "refund"])
        b = _fact("b", keywords=["order", "status"])
        assert keyword_overlap(a, b) == 1
        assert not is_related(a, b)

    def test_keyword_overlap_is_case_sensitive(self):
        a = _fact("a", keywords=["Order", "Status"])
        b = _fact("b", keywords=["order", "status"])
        assert keyword_overlap(a, b) == 0

    def test_citation_overlap_ignores_line_ranges(self):
        a = _fact("a", citations=["src/x.ts:10-20"])
        b = _fact("b", citations=["src/x.ts:5-8"])
        assert citation_overlap(a, b) == 1
        assert is_related(a, b)

    def test_different_files_not_related(self):
        a = _fact("a", citations=["src/x.ts:10-20"])
        b = _fact("b", citations=["src/y.ts:10-20"])
        assert not is_related(a, b)


class TestLinkFact:
    def test_keyword_overlap_links_both_ways(self, tmp_path):
        directory = tmp_path / "src" / "order"
        append_fact(directory, _fact("B", keywords=["order", "status"]))
        a = _fact("A", keywords=["order", "status", "update"])

        added = link_fact(a, tmp_path)

        assert a.related_facts == ["B"]
        assert added == [GraphEdge("A", "B", "related"), GraphEdge("B", "A", "related")]
        graph = load_graph(tmp_path)
        assert graph.has_edge("A", "B") and graph.has_edge("B", "A")
        assert "A" in graph.nodes
        assert _stored(directory, "B").related_facts == ["A"]

    def test_citation_overlap_links_without_keywords(self, tmp_path):
        append_fact(tmp_path / "src", _fact("B", keywords=["alpha"], citations=["src/x.ts:5-8"]))
        a = _fact("A", keywords=["beta"], citations=["src/x.ts:10-20"])

        link_fact(a, tmp_path)

        assert a.related_facts == ["B"]
        assert _stored(tmp_path / "src", "B").related_facts == ["A"]

    def test_links_across_directories(self, tmp_path):
        append_fact(tmp_path / "src" / "user", _fact("U", keywords=["auth", "token"]))
        append_fact(tmp_path / "src" / "order", _fact("O", keywords=["auth", "token"]))
        a = _fact("A", keywords=["auth", "token"])

        link_fact(a, tmp_path)

        assert sorted(a.related_facts) == ["O", "U"]
        assert _stored(tmp_path / "src" / "user", "U").related_facts == ["A"]
        assert _stored(tmp_path / "src" / "order", "O").related_facts == ["A"]

    def test_unrelated_facts_untouched(self, tmp_path):
        append_fact(tmp_path, _fact("B", keywords=["order"]))
        log = knowledge_dir(tmp_path) / "facts.jsonl"
        before = log.read_bytes()
        a = _fact("A", keywords=["order", "refund"])

        added = link_fact(a, tmp_path)

        assert added == []
        assert a.related_facts == []
        assert log.read_bytes() == before
        # Graph is still written with the new node
        assert load_graph(tmp_path).nodes == ["A"]

    def test_self_not_linked(self, tmp_path):
        a = _fact("A", keywords=["order", "status"], citations=["src/x.py"])
        append_fact(tmp_path, a)

        link_fact(a, tmp_path)

        assert a.related_facts == []
        assert load_graph(tmp_path).edges == []

    def test_stored_new_fact_gets_related_list(self, tmp_path):
        append_fact(tmp_path / "src", _fact("B", keywords=["order", "status"]))
        a = _fact("A", keywords=["order", "status"])
        append_fact(tmp_path / "lib", a)

        link_fact(a, tmp_path)

        assert _stored(tmp_path / "lib", "A").related_facts == ["B"]
        assert _stored(tmp_path / "src", "B").related_facts == ["A"]

    def test_new_fact_capped_at_max(self, tmp_path):
        for i in range(8):
            append_fact(tmp_path, _fact(f"E{i}", keywords=["order", "status"]))
        a = _fact("A", keywords=["order", "status"])

        added = link_fact(a, tmp_path)

        assert a.related_facts == [f"E{i}" for i in range(MAX_RELATED_FACTS)]
        assert len(added) == 2 * MAX_RELATED_FACTS
        assert _stored(tmp_path, "E5").related_facts == []

    def test_existing_fact_at_cap_is_skipped(self, tmp_path):
        full = [f"x{i}" for i in range(MAX_RELATED_FACTS)]
        append_fact(tmp_path, _fact("FULL", keywords=["order", "status"], related=full))
        append_fact(tmp_path, _fact("OPEN", keywords=["order", "status"]))
        a = _fact("A", keywords=["order", "status"])

        link_fact(a, tmp_path)

        assert a.related_facts == ["OPEN"]
        assert _stored(tmp_path, "FULL").related_facts == full

    def test_new_fact_at_cap_links_nothing(self, tmp_path):
        append_fact(tmp_path, _fact("B", keywords=["order", "status"]))
        full = [f"x{i}" for i in range(MAX_RELATED_FACTS)]
        a = _fact("A", keywords=["order", "status"], related=full)

        added = link_fact(a, tmp_path)

        assert added == []
        assert a.related_facts == full
        assert _stored(tmp_path, "B").related_facts == []

    def test_preexisting_related_ids_kept_first_and_truncated(self, tmp_path):
        for i in range(3):
            append_fact(tmp_path, _fact(f"E{i}", keywords=["order", "status"]))
        a = _fact("A", keywords=["order", "status"], related=["p1", "p2", "p3", "p4"])

        link_fact(a, tmp_path)

        assert a.related_facts == ["p1", "p2", "p3", "p4", "E0"]
        # All three were declared related and got the back-reference
        for i in range(3):
            assert _stored(tmp_path, f"E{i}").related_facts == ["A"]

    def test_cap_holds_on_both_sides_after_many_links(self, tmp_path):
        for i in range(12):
            fact = _fact(f"F{i}", keywords=["order", "status"])
            append_fact(tmp_path, fact)
            link_fact(fact, tmp_path)

        for fact in load_knowledge(tmp_path):
            assert len(fact.related_facts) <= MAX_RELATED_FACTS

    def test_relinking_does_not_duplicate_edges(self, tmp_path):
        append_fact(tmp_path, _fact("B", keywords=["order", "status"]))
        link_fact(_fact("A", keywords=["order", "status"]), tmp_path)
        link_fact(_fact("A", keywords=["order", "status"]), tmp_path)

        graph = load_graph(tmp_path)
        assert len(graph.edges) == 2
        assert graph.nodes.count("A") == 1
        assert _stored(tmp_path, "B").related_facts == ["A"]

    def test_corrupt_graph_starts_fresh(self, tmp_path, caplog):
        append_fact(tmp_path, _fact("B", keywords=["order", "status"]))
        path = graph_path(tmp_path)
        path.parent.mkdir()
        path.write_text("not json at all", encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            link_fact(_fact("A", keywords=["order", "status"]), tmp_path)

        assert "starting fresh" in caplog.text
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["nodes"] == ["A"]
        assert len(data["edges"]) == 2

    def test_unreadable_log_skipped(self, tmp_path):
        broken = tmp_path / "broken" / ".knowledge" / "facts.jsonl"
        broken.parent.mkdir(parents=True)
        broken.write_bytes(b"\xff\xfe not utf-8")
        append_fact(tmp_path / "ok", _fact("B", keywords=["order", "status"]))
        a = _fact("A", keywords=["order", "status"])

        link_fact(a, tmp_path)

        assert a.related_facts == ["B"]

    def test_graph_dir_creation_failure_propagates(self, tmp_path):
        (tmp_path / ".codebase-memory").write_text("in the way")
        with pytest.raises(OSError):
            link_fact(_fact("A"), tmp_path)

    def test_write_back_keeps_facts_with_unicode_separators(self, tmp_path):
        append_fact(tmp_path, Fact(id="X", subject="NEL\x85subject", fact="line\u2028separated"))
        append_fact(tmp_path, _fact("B", keywords=["order", "status"]))

        link_fact(_fact("A", keywords=["order", "status"]), tmp_path)

        stored = load_knowledge(tmp_path)
        assert [f.id for f in stored] == ["X", "B"]
        assert stored[0].subject == "NEL\x85subject"
        assert stored[0].fact == "line\u2028separated"
        assert stored[1].related_facts == ["A"]

    def test_write_back_keeps_concurrent_appends(self, tmp_path):
        append_fact(tmp_path, _fact("B", keywords=["order", "status"]))
        a = _fact("A", keywords=["order", "status"])
        late = _fact("LATE")

        # Simulate an append landing between the scan and the write-back
        original = linker._write_back

        def _append_then_write_back(*args, **kwargs):
            append_fact(tmp_path, late)
            return original(*args, **kwargs)

        with patch.object(linker, "_write_back", side_effect=_append_then_write_back):
            link_fact(a, tmp_path)

        assert [f.id for f in load_knowledge(tmp_path)] == ["B", "LATE"]
        assert _stored(tmp_path, "B").related_facts == ["A"]


class TestRankedLinking:
    def test_best_scoring_candidates_win(self, tmp_path):
        for i in range(5):
            append_fact(tmp_path, _fact(f"weak{i}", keywords=["order", "status"]))
        append_fact(tmp_path, _fact("strong", keywords=["order", "status", "refund", "tax"]))
        a = _fact("A", keywords=["order", "status", "refund", "tax"])

        link_fact(a, tmp_path, ranked=True)

        assert a.related_facts[0] == "strong"
        assert a.related_facts[1:] == ["weak0", "weak1", "weak2", "weak3"]

    def test_default_is_discovery_order(self, tmp_path):
        for i in range(5):
            append_fact(tmp_path, _fact(f"weak{i}", keywords=["order", "status"]))
        append_fact(tmp_path, _fact("strong", keywords=["order", "status", "refund", "tax"]))
        a = _fact("A", keywords=["order", "status", "refund", "tax"])

        link_fact(a, tmp_path)

        assert "strong" not in a.related_facts


class TestLearnAndRelink:
    def test_learn_fact_stores_and_links(self, tmp_path):
        append_fact(tmp_path / "src", _fact("B", citations=["src/app.py:1-5"]))
        a = _fact("A", citations=["src/app.py:40"])

        added = learn_fact(tmp_path / "lib", a, tmp_path)

        assert len(added) == 2
        assert _stored(tmp_path / "lib", "A").related_facts == ["B"]
        assert _stored(tmp_path / "src", "B").related_facts == ["A"]

    def test_relink_all_links_stored_facts(self, tmp_path):
        append_fact(tmp_path / "a", _fact("A1", keywords=["x", "y"]))
        append_fact(tmp_path / "b", _fact("B1", keywords=["x", "y"]))
        append_fact(tmp_path / "c", _fact("C1", keywords=["z"]))

        relink_all(tmp_path)

        graph = load_graph(tmp_path)
        assert graph.has_edge("A1", "B1") and graph.has_edge("B1", "A1")
        assert len(graph.edges) == 2
        assert _stored(tmp_path / "a", "A1").related_facts == ["B1"]
        assert _stored(tmp_path / "b", "B1").related_facts == ["A1"]
        assert _stored(tmp_path / "c", "C1").related_facts == []

    def test_relink_all_twice_adds_nothing(self, tmp_path):
        append_fact(tmp_path / "a", _fact("A1", keywords=["x", "y"]))
        append_fact(tmp_path / "b", _fact("B1", keywords=["x", "y"]))

        assert relink_all(tmp_path) == 2
        assert relink_all(tmp_path) == 0
        assert _stored(tmp_path / "b", "B1").related_facts == ["A1"]

    def test_relink_all_loads_project_once(self, tmp_path):
        for name in ("a", "b", "c"):
            append_fact(tmp_path / name, _fact(f"{name.upper()}1", keywords=["x", "y"]))

        with patch.object(linker, "load_project_facts", wraps=linker.load_project_facts) as loader:
            assert relink_all(tmp_path) == 6

        assert loader.call_count == 1
        assert _stored(tmp_path / "c", "C1").related_facts == ["A1", "B1"]

    def test_relink_all_respects_caps_across_iterations(self, tmp_path):
        for i in range(8):
            append_fact(tmp_path, _fact(f"F{i}", keywords=["x", "y"]))

        relink_all(tmp_path)

        stored = load_knowledge(tmp_path)
        assert [f.id for f in stored] == [f"F{i}" for i in range(8)]
        assert stored[0].related_facts == ["F1", "F2", "F3", "F4", "F5"]
        for fact in stored:
            assert len(fact.related_facts) <= MAX_RELATED_FACTS
