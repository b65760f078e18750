"""
Index Builder - derives the search index and graph skeleton from fact logs.

Both builders merge into whatever is already persisted. They only ever
add: entries for facts that no longer exist are kept.
"""

import logging

from smart_codebase.knowledge.artifacts import (
    load_graph,
    load_search_index,
    save_graph,
    save_search_index,
)
from smart_codebase.knowledge.loader import load_knowledge
from smart_codebase.knowledge.models import KnowledgeGraph, SearchIndex
from smart_codebase.knowledge.paths import PathLike, find_knowledge_files, relative_location

logger = logging.getLogger(__name__)


def build_search_index(project_root: PathLike) -> SearchIndex:
    """Index every keyword of every stored fact by its location.

    Example:
        index.keywords == {"order": ["src/order/.knowledge/facts.jsonl:f1"]}
    """
    index = load_search_index(project_root)

    for log_path in find_knowledge_files(project_root):
        for fact in load_knowledge(log_path.parent.parent):
            location = relative_location(project_root, log_path, fact.id)
            for keyword in fact.keywords:
                index.add_location(keyword, location)

    save_search_index(project_root, index)
    return index


def build_graph(project_root: PathLike) -> KnowledgeGraph:
    """Add every stored fact id as a graph node.

    Existing edges are kept as they are; edges are only created by the
    linker.
    """
    graph = load_graph(project_root)

    for log_path in find_knowledge_files(project_root):
        for fact in load_knowledge(log_path.parent.parent):
            graph.add_node(fact.id)

    save_graph(project_root, graph)
    return graph


def rebuild_all(project_root: PathLike) -> tuple[SearchIndex, KnowledgeGraph]:
    """Rebuild both the search index and the graph."""
    logger.info("Rebuilding search index...")
    index = build_search_index(project_root)

    logger.info("Rebuilding knowledge graph...")
    graph = build_graph(project_root)

    logger.info(
        f"All indexes rebuilt: {len(index.keywords)} keywords, "
        f"{len(graph.nodes)} nodes, {len(graph.edges)} edges"
    )
    return index, graph
