"""
Context injection for file reads.

When the assistant reads a file, relevant facts stored next to it are
rendered as a Markdown block appended to the tool output. Each file is
injected at most once per session.
"""

import logging
import re
from pathlib import PurePath
from typing import Optional

from smart_codebase.config import PluginConfig
from smart_codebase.knowledge.loader import load_relevant_knowledge
from smart_codebase.knowledge.models import Fact

logger = logging.getLogger(__name__)

# Maximum characters of fact content shown per fact
MAX_CONTENT_CHARS = 500


def extract_path_keywords(file_path: str) -> list[str]:
    """Keywords implied by a file path.

    src/order/service.py -> ["service", "src", "order"]
    """
    parts = [part for part in re.split(r"[/\\]", str(file_path)) if part and part != "."]
    if not parts:
        return []

    keywords: list[str] = []
    stem = PurePath(parts[-1]).stem
    if stem:
        keywords.append(stem)
    keywords.extend(parts[:-1])
    return keywords


def sort_by_importance(facts: list[Fact]) -> list[Fact]:
    """Return facts ordered high -> medium -> low (stable)."""
    return sorted(facts, key=lambda f: f.importance.rank)


def format_facts_as_markdown(facts: list[Fact]) -> str:
    if not facts:
        return ""

    lines = ["", "---", "## Codebase Knowledge", ""]
    for fact in facts:
        lines.append(f"**{fact.subject}** ({fact.importance.value} importance)")
        lines.append(f"> {fact.fact[:MAX_CONTENT_CHARS]}")
        if fact.learned_from:
            lines.append(f"> Source: {fact.learned_from}")
        if fact.citations:
            lines.append(f"> Citations: {', '.join(fact.citations)}")
        lines.append("")
    lines.append("---")
    lines.append("")
    return "\n".join(lines)


def select_relevant_facts(
    file_path: str,
    keywords: Optional[list[str]] = None,
    limit: int = 5,
) -> list[Fact]:
    """Relevant facts for *file_path*, most important first, at most *limit*."""
    if keywords is None:
        keywords = extract_path_keywords(file_path)
    facts = load_relevant_knowledge(file_path, keywords)
    return sort_by_importance(facts)[:limit]


class ContextInjector:
    """Injects stored knowledge into file-read output, once per session.

    State is an explicit table keyed by session id, owned by the
    injector instance.
    """

    def __init__(self, config: Optional[PluginConfig] = None):
        self.config = config or PluginConfig()
        self._injected: dict[str, set[str]] = {}

    @property
    def active(self) -> bool:
        return self.config.enabled and self.config.auto_inject

    def inject(self, session_id: str, file_path: str) -> str:
        """Markdown to append to a read of *file_path*, or "".

        Never raises: knowledge loading must not break file reading.
        """
        if not self.active or not file_path:
            return ""

        seen = self._injected.setdefault(session_id, set())
        if file_path in seen:
            return ""

        try:
            facts = select_relevant_facts(file_path, limit=self.config.max_relevant_facts)
            section = format_facts_as_markdown(facts)
        except Exception as e:
            logger.error(f"Failed to inject knowledge for {file_path}: {e}")
            return ""

        seen.add(file_path)
        return section

    def end_session(self, session_id: str) -> None:
        self._injected.pop(session_id, None)

    def sessions(self) -> list[str]:
        return list(self._injected)
