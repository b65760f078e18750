"""
Knowledge Linker - connects a new fact to related facts project-wide.

Two facts are related when they share at least two keywords or cite at
least one common file. Every relationship is stored as a pair of edges
in the graph and in the ``related_facts`` list of both facts, capped at
MAX_RELATED_FACTS per fact.

Relationship discovery is order-dependent: by default the first matches
in discovery order (log order, then line order) win the available slots.
Callers must serialize link_fact calls per project; the per-directory
lock only protects individual log rewrites.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from smart_codebase.knowledge.artifacts import load_graph, save_graph
from smart_codebase.knowledge.loader import load_knowledge
from smart_codebase.knowledge.locking import LOCK_TIMEOUT_SECONDS, KnowledgeLock
from smart_codebase.knowledge.models import (
    MAX_RELATED_FACTS,
    RELATED,
    Fact,
    GraphEdge,
    KnowledgeGraph,
)
from smart_codebase.knowledge.paths import PathLike, find_knowledge_files
from smart_codebase.knowledge.writer import append_fact, rewrite_facts

logger = logging.getLogger(__name__)

MIN_SHARED_KEYWORDS = 2
MIN_SHARED_CITATION_FILES = 1


@dataclass
class _Candidate:
    fact: Fact
    keyword_overlap: int
    citation_overlap: int

    @property
    def score(self) -> int:
        return self.keyword_overlap + self.citation_overlap


def keyword_overlap(new_fact: Fact, existing: Fact) -> int:
    """Number of the new fact's keywords also carried by *existing*.

    Case-sensitive, unlike relevance lookup in the loader.
    """
    existing_keywords = set(existing.keywords)
    return sum(1 for keyword in new_fact.keywords if keyword in existing_keywords)


def citation_overlap(new_fact: Fact, existing: Fact) -> int:
    """Number of the new fact's cited files that *existing* also cites."""
    existing_files = set(existing.citation_files())
    return sum(1 for path in new_fact.citation_files() if path in existing_files)


def is_related(new_fact: Fact, existing: Fact) -> bool:
    return (
        keyword_overlap(new_fact, existing) >= MIN_SHARED_KEYWORDS
        or citation_overlap(new_fact, existing) >= MIN_SHARED_CITATION_FILES
    )


def load_project_facts(project_root: PathLike) -> list[tuple[Path, list[Fact]]]:
    """Load every fact log in the project, paired with its path."""
    return [
        (log_path, load_knowledge(log_path.parent.parent))
        for log_path in find_knowledge_files(project_root)
    ]


def link_fact(
    new_fact: Fact,
    project_root: PathLike,
    ranked: bool = False,
    skip_known: bool = False,
    lock_timeout: float = LOCK_TIMEOUT_SECONDS,
) -> list[GraphEdge]:
    """Link *new_fact* to related facts across the whole project.

    Updates ``new_fact.related_facts`` in place, adds bidirectional edges
    to the graph, and writes the new id into the ``related_facts`` of
    every related fact's log (and the new fact's own record, if stored).

    Args:
        new_fact: The fact to link.
        project_root: Root of the project holding the fact logs.
        ranked: Fill the slots with the best-scoring candidates instead of
            the first ones found.
        skip_known: Ignore facts already listed in ``new_fact.related_facts``.
        lock_timeout: Seconds to wait for each directory lock on write-back.

    Returns:
        Edges newly added to the graph.

    Raises:
        LockTimeout: A log could not be locked for write-back.
        OSError: The graph or a fact log could not be written.
    """
    graph = load_graph(project_root)
    project_logs = load_project_facts(project_root)

    related_ids, added = _link(new_fact, graph, project_logs, ranked, skip_known)

    save_graph(project_root, graph)
    _write_back(new_fact, related_ids, project_logs, lock_timeout)
    return added


def _link(
    new_fact: Fact,
    graph: KnowledgeGraph,
    project_logs: list[tuple[Path, list[Fact]]],
    ranked: bool,
    skip_known: bool,
) -> tuple[list[str], list[GraphEdge]]:
    """Pick related facts and add the edges to *graph*, in memory only."""
    graph.add_node(new_fact.id)

    all_facts = [fact for _, facts in project_logs for fact in facts]
    related_ids = _find_related(new_fact, all_facts, ranked, skip_known)

    new_fact.related_facts = (list(new_fact.related_facts) + related_ids)[:MAX_RELATED_FACTS]

    added: list[GraphEdge] = []
    for related_id in related_ids:
        for edge in (
            GraphEdge(new_fact.id, related_id, RELATED),
            GraphEdge(related_id, new_fact.id, RELATED),
        ):
            if graph.add_edge(edge):
                added.append(edge)

    if related_ids:
        logger.info(f"Linked fact {new_fact.id} to {len(related_ids)} related facts")
    return related_ids, added


def _find_related(
    new_fact: Fact,
    all_facts: list[Fact],
    ranked: bool,
    skip_known: bool,
) -> list[str]:
    # Cap check uses the count the new fact had on entry, not the running one.
    initial_count = len(new_fact.related_facts)
    known = set(new_fact.related_facts)
    candidates: list[_Candidate] = []

    for existing in all_facts:
        if existing.id == new_fact.id:
            continue
        if skip_known and existing.id in known:
            continue
        if initial_count >= MAX_RELATED_FACTS or len(existing.related_facts) >= MAX_RELATED_FACTS:
            continue

        candidate = _Candidate(
            fact=existing,
            keyword_overlap=keyword_overlap(new_fact, existing),
            citation_overlap=citation_overlap(new_fact, existing),
        )
        if (candidate.keyword_overlap < MIN_SHARED_KEYWORDS
                and candidate.citation_overlap < MIN_SHARED_CITATION_FILES):
            continue

        candidates.append(candidate)
        if not ranked and len(candidates) >= MAX_RELATED_FACTS:
            break

    if ranked:
        # sorted() is stable, so ties keep discovery order
        candidates = sorted(candidates, key=lambda c: c.score, reverse=True)

    return [c.fact.id for c in candidates[:MAX_RELATED_FACTS]]


def _record_links(facts: list[Fact], new_fact: Fact, related_ids: set[str]) -> bool:
    """Apply a link to a list of stored facts. Returns True if any changed."""
    modified = False
    for fact in facts:
        if fact.id in related_ids and new_fact.id not in fact.related_facts:
            fact.related_facts = (fact.related_facts + [new_fact.id])[:MAX_RELATED_FACTS]
            modified = True
        elif fact.id == new_fact.id and fact.related_facts != new_fact.related_facts:
            fact.related_facts = list(new_fact.related_facts)
            modified = True
    return modified


def _write_back(
    new_fact: Fact,
    related_ids: list[str],
    project_logs: list[tuple[Path, list[Fact]]],
    lock_timeout: float,
) -> None:
    """Record the relationship in the stored records of both sides."""
    if not related_ids:
        return

    wanted = set(related_ids)
    touched = [
        log_path for log_path, facts in project_logs
        if any(f.id in wanted or f.id == new_fact.id for f in facts)
    ]
    for log_path in touched:
        directory = log_path.parent.parent
        with KnowledgeLock(log_path.parent, timeout=lock_timeout):
            # Re-read under the lock so appends since the scan are kept.
            facts = load_knowledge(directory)
            if _record_links(facts, new_fact, wanted):
                rewrite_facts(directory, facts)


def relink_all(
    project_root: PathLike,
    ranked: bool = False,
    lock_timeout: float = LOCK_TIMEOUT_SECONDS,
) -> int:
    """Link every stored fact, in discovery order. Returns edges added.

    The project is loaded once. Each write-back is mirrored into the
    in-memory copy so later facts see the caps left by earlier ones.
    """
    graph = load_graph(project_root)
    project_logs = load_project_facts(project_root)

    total = 0
    for _, facts in project_logs:
        for fact in facts:
            related_ids, added = _link(fact, graph, project_logs, ranked, skip_known=True)
            if not related_ids:
                continue
            _write_back(fact, related_ids, project_logs, lock_timeout)
            for _, other in project_logs:
                _record_links(other, fact, set(related_ids))
            total += len(added)

    save_graph(project_root, graph)
    logger.info(f"Relinked project {project_root}: {total} new edges")
    return total


def learn_fact(
    directory: PathLike,
    fact: Fact,
    project_root: PathLike,
    ranked: bool = False,
    lock_timeout: float = LOCK_TIMEOUT_SECONDS,
) -> list[GraphEdge]:
    """Store *fact* for *directory*, then link it into the project graph."""
    append_fact(directory, fact, timeout=lock_timeout)
    return link_fact(fact, project_root, ranked=ranked, lock_timeout=lock_timeout)
