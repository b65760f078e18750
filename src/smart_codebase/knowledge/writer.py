"""
Fact Store - append-only JSON Lines writer for per-directory fact logs.

Storage structure:
    src/order/service.py       -> src/order/.knowledge/facts.jsonl
    src/user/hooks/use_auth.py -> src/user/hooks/.knowledge/facts.jsonl
"""

import logging
import os
import tempfile
from pathlib import Path

from smart_codebase.knowledge.locking import LOCK_TIMEOUT_SECONDS, KnowledgeLock
from smart_codebase.knowledge.models import Fact
from smart_codebase.knowledge.paths import PathLike, facts_file, knowledge_dir

logger = logging.getLogger(__name__)


def append_fact(directory: PathLike, fact: Fact, timeout: float = LOCK_TIMEOUT_SECONDS) -> Path:
    """Append *fact* to the fact log of *directory*.

    Creates ``<directory>/.knowledge/`` if needed and holds the directory
    lock for the whole read-append-write cycle.

    Args:
        directory: Directory the fact belongs to.
        fact: Fully formed fact to store.
        timeout: Seconds to wait for the directory lock.

    Returns:
        Path of the fact log that was written.

    Raises:
        LockTimeout: The lock was not acquired within *timeout*.
        OSError: The log could not be read or written.
    """
    folder = knowledge_dir(directory)
    folder.mkdir(parents=True, exist_ok=True)
    log_path = facts_file(directory)

    with KnowledgeLock(folder, timeout=timeout):
        existing = log_path.read_text(encoding="utf-8") if log_path.exists() else ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        write_text_atomic(log_path, existing + fact.to_json_line() + "\n")

    logger.debug(f"Appended fact {fact.id} to {log_path}")
    return log_path


def rewrite_facts(directory: PathLike, facts: list[Fact]) -> Path:
    """Replace the whole fact log of *directory* with *facts*.

    The caller is expected to hold the directory's KnowledgeLock.
    """
    log_path = facts_file(directory)
    content = "".join(f"{fact.to_json_line()}\n" for fact in facts)
    write_text_atomic(log_path, content)
    logger.debug(f"Rewrote {len(facts)} facts in {log_path}")
    return log_path


def write_text_atomic(path: Path, content: str) -> None:
    """Write *content* to *path* via a temp file and rename."""
    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}_",
        suffix=".tmp",
    )
    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.replace(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
