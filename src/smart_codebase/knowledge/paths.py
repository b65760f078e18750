"""
On-disk layout of the knowledge base and fact-log discovery.

    <dir>/.knowledge/facts.jsonl            per-directory fact log
    <dir>/.knowledge/.lock                  transient writer lock
    <root>/.codebase-memory/graph.json      knowledge graph
    <root>/.codebase-memory/search-index.json
"""

import logging
import os
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

KNOWLEDGE_DIR_NAME = ".knowledge"
FACTS_FILE_NAME = "facts.jsonl"
LOCK_FILE_NAME = ".lock"

CODEBASE_MEMORY_DIR = ".codebase-memory"
GRAPH_FILE = "graph.json"
SEARCH_INDEX_FILE = "search-index.json"


def knowledge_dir(directory: PathLike) -> Path:
    return Path(directory) / KNOWLEDGE_DIR_NAME


def facts_file(directory: PathLike) -> Path:
    return knowledge_dir(directory) / FACTS_FILE_NAME


def memory_dir(project_root: PathLike) -> Path:
    return Path(project_root) / CODEBASE_MEMORY_DIR


def graph_path(project_root: PathLike) -> Path:
    return memory_dir(project_root) / GRAPH_FILE


def search_index_path(project_root: PathLike) -> Path:
    return memory_dir(project_root) / SEARCH_INDEX_FILE


def knowledge_directory_for(file_path: PathLike) -> Path:
    """Directory whose fact log holds knowledge about *file_path*.

    src/order/service.py -> src/order
    """
    return Path(file_path).parent


def find_knowledge_files(project_root: PathLike) -> list[Path]:
    """Find every fact log under *project_root*.

    Directories are visited in sorted order so discovery order is stable
    across runs. Hidden directories are not descended into; only their
    own ``.knowledge`` folder is looked at.
    """
    root = Path(project_root)
    found: list[Path] = []

    def _on_error(error: OSError) -> None:
        logger.error(f"Error scanning directory {error.filename}: {error}")

    for dirpath, dirnames, _ in os.walk(root, onerror=_on_error):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        candidate = facts_file(dirpath)
        if candidate.is_file():
            found.append(candidate)

    logger.debug(f"Found {len(found)} fact logs under {root}")
    return found


def relative_location(project_root: PathLike, log_path: PathLike, fact_id: str) -> str:
    """Search-index location string for a fact: "<relative log path>:<id>"."""
    relative = Path(os.path.relpath(log_path, project_root)).as_posix()
    return f"{relative}:{fact_id}"
