"""
Core data models for the smart-codebase knowledge store.

Facts are the atomic unit of stored knowledge. The graph and search
index are project-global artifacts derived from the fact logs.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

MAX_RELATED_FACTS = 5
RELATED = "related"


class Importance(Enum):
    """How much a fact matters when surfaced to the assistant."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: high before medium before low."""
        return _IMPORTANCE_RANK[self]


_IMPORTANCE_RANK = {Importance.HIGH: 0, Importance.MEDIUM: 1, Importance.LOW: 2}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"'{key}' must be a list, got {type(value).__name__}")
    return [str(item) for item in value]


@dataclass
class Fact:
    """A single piece of knowledge learned from a coding session."""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    timestamp: str = field(default_factory=_utc_now)   # ISO 8601
    subject: str = ""                                   # Short topic label
    fact: str = ""                                      # Content of the learning
    citations: list[str] = field(default_factory=list)  # "file[:line-range]"
    importance: Importance = Importance.MEDIUM
    learned_from: str = ""                              # Provenance, e.g. session id
    keywords: list[str] = field(default_factory=list)
    related_facts: list[str] = field(default_factory=list)

    def citation_files(self) -> list[str]:
        """File portion of each citation (text before the first ':')."""
        return [citation.partition(":")[0] for citation in self.citations]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "subject": self.subject,
            "fact": self.fact,
            "citations": list(self.citations),
            "importance": self.importance.value,
            "learned_from": self.learned_from,
            "keywords": list(self.keywords),
            "related_facts": list(self.related_facts),
        }

    def to_json_line(self) -> str:
        """Serialize as a single JSON Lines record (without the newline)."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Fact":
        if not isinstance(data, dict):
            raise TypeError(f"fact record must be an object, got {type(data).__name__}")

        return cls(
            id=str(data["id"]),
            timestamp=data.get("timestamp") or "",
            subject=data.get("subject") or "",
            fact=data.get("fact") or "",
            citations=_string_list(data, "citations"),
            importance=Importance(data.get("importance") or "medium"),
            learned_from=data.get("learned_from") or "",
            keywords=_string_list(data, "keywords"),
            related_facts=_string_list(data, "related_facts"),
        )


@dataclass(frozen=True)
class GraphEdge:
    """Directed edge between two facts. Created in pairs by the linker."""
    source: str
    target: str
    relation: str = RELATED

    def key(self) -> tuple[str, str, str]:
        return (self.source, self.target, self.relation)

    def to_dict(self) -> dict:
        return {"from": self.source, "to": self.target, "relation": self.relation}

    @classmethod
    def from_dict(cls, data: dict) -> "GraphEdge":
        if not isinstance(data, dict):
            raise TypeError(f"edge must be an object, got {type(data).__name__}")
        return cls(
            source=str(data["from"]),
            target=str(data["to"]),
            relation=str(data.get("relation", RELATED)),
        )


@dataclass
class KnowledgeGraph:
    """Project-wide relationship topology over fact ids.

    Nodes and edges keep insertion order; both are deduplicated when
    added through add_node / add_edge.
    """
    nodes: list[str] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._node_set = set()
        self._edge_keys = set()
        nodes, edges = self.nodes, self.edges
        self.nodes, self.edges = [], []
        for node in nodes:
            self.add_node(node)
        for edge in edges:
            self.add_edge(edge)

    def add_node(self, fact_id: str) -> bool:
        if fact_id in self._node_set:
            return False
        self._node_set.add(fact_id)
        self.nodes.append(fact_id)
        return True

    def has_node(self, fact_id: str) -> bool:
        return fact_id in self._node_set

    def add_edge(self, edge: GraphEdge) -> bool:
        """Add an edge unless the same (from, to, relation) already exists."""
        if edge.key() in self._edge_keys:
            return False
        self._edge_keys.add(edge.key())
        self.edges.append(edge)
        return True

    def has_edge(self, source: str, target: str, relation: str = RELATED) -> bool:
        return (source, target, relation) in self._edge_keys

    def to_dict(self) -> dict:
        return {
            "nodes": list(self.nodes),
            "edges": [edge.to_dict() for edge in self.edges],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KnowledgeGraph":
        if not isinstance(data, dict):
            raise TypeError(f"graph must be an object, got {type(data).__name__}")
        nodes = data.get("nodes", [])
        edges = data.get("edges", [])
        if not isinstance(nodes, list) or not isinstance(edges, list):
            raise TypeError("graph 'nodes' and 'edges' must be lists")
        return cls(
            nodes=[str(node) for node in nodes],
            edges=[GraphEdge.from_dict(edge) for edge in edges],
        )


@dataclass
class SearchIndex:
    """Keyword -> fact locations ("<relative log path>:<fact id>")."""
    keywords: dict[str, list[str]] = field(default_factory=dict)

    def add_location(self, keyword: str, location: str) -> bool:
        locations = self.keywords.setdefault(keyword, [])
        if location in locations:
            return False
        locations.append(location)
        return True

    def lookup(self, keyword: str) -> list[str]:
        return list(self.keywords.get(keyword, []))

    def to_dict(self) -> dict:
        return {"keywords": {k: list(v) for k, v in self.keywords.items()}}

    @classmethod
    def from_dict(cls, data: dict) -> "SearchIndex":
        if not isinstance(data, dict):
            raise TypeError(f"search index must be an object, got {type(data).__name__}")
        keywords = data.get("keywords", {})
        if not isinstance(keywords, dict):
            raise TypeError("search index 'keywords' must be an object")
        merged: dict[str, list[str]] = {}
        for keyword, locations in keywords.items():
            if not isinstance(locations, list):
                raise TypeError(f"locations for '{keyword}' must be a list")
            merged[keyword] = [str(loc) for loc in locations]
        return cls(keywords=merged)
