"""
Persistence for the project-global knowledge graph and search index.

Both artifacts are caches derived from the fact logs: a missing or
corrupt file is treated as empty and overwritten on the next save.
"""

import json
import logging
from pathlib import Path

from smart_codebase.knowledge.models import KnowledgeGraph, SearchIndex
from smart_codebase.knowledge.paths import PathLike, graph_path, memory_dir, search_index_path
from smart_codebase.knowledge.writer import write_text_atomic

logger = logging.getLogger(__name__)


def _read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(project_root: PathLike, path: Path, data: dict) -> None:
    # mkdir failures propagate: losing the graph silently is worse than failing.
    memory_dir(project_root).mkdir(parents=True, exist_ok=True)
    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False))


def load_graph(project_root: PathLike) -> KnowledgeGraph:
    path = graph_path(project_root)
    if not path.exists():
        return KnowledgeGraph()
    try:
        return KnowledgeGraph.from_dict(_read_json(path))
    except (json.JSONDecodeError, UnicodeDecodeError, OSError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Failed to load existing graph {path}, starting fresh: {e}")
        return KnowledgeGraph()


def save_graph(project_root: PathLike, graph: KnowledgeGraph) -> Path:
    path = graph_path(project_root)
    _write_json(project_root, path, graph.to_dict())
    logger.debug(f"Saved graph with {len(graph.nodes)} nodes, {len(graph.edges)} edges to {path}")
    return path


def load_search_index(project_root: PathLike) -> SearchIndex:
    path = search_index_path(project_root)
    if not path.exists():
        return SearchIndex()
    try:
        return SearchIndex.from_dict(_read_json(path))
    except (json.JSONDecodeError, UnicodeDecodeError, OSError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Failed to load existing search index {path}, starting fresh: {e}")
        return SearchIndex()


def save_search_index(project_root: PathLike, index: SearchIndex) -> Path:
    path = search_index_path(project_root)
    _write_json(project_root, path, index.to_dict())
    logger.debug(f"Saved search index with {len(index.keywords)} keywords to {path}")
    return path
