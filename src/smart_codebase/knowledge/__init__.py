"""
Knowledge store and linking engine.

Facts live in per-directory JSON Lines logs; the knowledge graph and the
search index are project-global caches rebuilt from those logs.
"""

from smart_codebase.knowledge.index_builder import build_graph, build_search_index, rebuild_all
from smart_codebase.knowledge.linker import learn_fact, link_fact, relink_all
from smart_codebase.knowledge.loader import load_knowledge, load_relevant_knowledge
from smart_codebase.knowledge.locking import KnowledgeLock, LockTimeout
from smart_codebase.knowledge.models import (
    MAX_RELATED_FACTS,
    Fact,
    GraphEdge,
    Importance,
    KnowledgeGraph,
    SearchIndex,
)
from smart_codebase.knowledge.writer import append_fact

__all__ = [
    "MAX_RELATED_FACTS",
    "Fact",
    "GraphEdge",
    "Importance",
    "KnowledgeGraph",
    "KnowledgeLock",
    "LockTimeout",
    "SearchIndex",
    "append_fact",
    "build_graph",
    "build_search_index",
    "learn_fact",
    "link_fact",
    "load_knowledge",
    "load_relevant_knowledge",
    "rebuild_all",
    "relink_all",
]
