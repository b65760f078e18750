"""
Fact Loader - reads fact logs and filters them by keyword.

The read path never raises: a missing or unreadable log yields no facts,
and a malformed line is skipped so partial corruption never loses the
rest of the log.
"""

import json
import logging
from typing import Iterable

from smart_codebase.knowledge.models import Fact
from smart_codebase.knowledge.paths import PathLike, facts_file, knowledge_directory_for

logger = logging.getLogger(__name__)


def load_knowledge(directory: PathLike) -> list[Fact]:
    """Load every fact stored for *directory*, in log order."""
    log_path = facts_file(directory)
    try:
        if not log_path.exists():
            return []
        content = log_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Error loading knowledge from {log_path}: {e}")
        return []

    return parse_facts(content, source=str(log_path))


def parse_facts(content: str, source: str = "<string>") -> list[Fact]:
    """Parse JSON Lines *content*, skipping blank and malformed lines.

    Records are separated by "\\n" only. Content may hold U+2028, U+0085
    and other characters that str.splitlines() would also break on.
    """
    facts: list[Fact] = []
    for lineno, raw in enumerate(content.split("\n"), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            facts.append(Fact.from_dict(json.loads(line)))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse fact at {source}:{lineno}: {e}")
    return facts


def load_relevant_knowledge(file_path: PathLike, keywords: Iterable[str]) -> list[Fact]:
    """Load facts for the directory of *file_path* that match *keywords*.

    A fact matches when any keyword is a case-insensitive substring of
    its subject, its content or one of its own keywords. No keywords
    means no filtering.
    """
    facts = load_knowledge(knowledge_directory_for(file_path))

    normalized = [k.lower() for k in keywords]
    if not normalized:
        return facts

    return [fact for fact in facts if matches_keywords(fact, normalized)]


def matches_keywords(fact: Fact, normalized_keywords: list[str]) -> bool:
    """True if any lowercase keyword occurs in the fact's searchable text."""
    subject = fact.subject.lower()
    content = fact.fact.lower()
    fact_keywords = [k.lower() for k in fact.keywords]

    for keyword in normalized_keywords:
        if keyword in subject or keyword in content:
            return True
        if any(keyword in fact_keyword for fact_keyword in fact_keywords):
            return True
    return False
