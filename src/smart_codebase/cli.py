"""
Command line interface for smart-codebase.

Subcommands:
- status: Show knowledge base statistics
- rebuild-index: Rebuild the search index and graph (optionally relink)
- add: Store a fact and link it into the graph
- relevant: Show the knowledge injected when a file is read
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from smart_codebase import __version__
from smart_codebase.config import PluginConfig, load_config
from smart_codebase.context import (
    extract_path_keywords,
    format_facts_as_markdown,
    select_relevant_facts,
)
from smart_codebase.knowledge.artifacts import load_graph
from smart_codebase.knowledge.index_builder import rebuild_all
from smart_codebase.knowledge.linker import learn_fact, load_project_facts, relink_all
from smart_codebase.knowledge.locking import LockTimeout
from smart_codebase.knowledge.models import Fact, GraphEdge, Importance
from smart_codebase.knowledge.paths import (
    CODEBASE_MEMORY_DIR,
    FACTS_FILE_NAME,
    GRAPH_FILE,
    KNOWLEDGE_DIR_NAME,
)
from smart_codebase.knowledge.writer import append_fact

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "SMART_CODEBASE_LOG_LEVEL"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smart-codebase",
        description="Knowledge persistence for AI coding sessions",
    )
    parser.add_argument("--version", action="version", version=f"smart-codebase {__version__}")
    parser.add_argument(
        "--project",
        metavar="PATH",
        default=".",
        help="Project root (default: current directory)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Knowledge base commands")
    register_commands(subparsers)
    return parser


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """
    Register all knowledge base subcommands.

    Args:
        subparsers: The subparsers action from the main parser
    """
    subparsers.add_parser(
        "status",
        help="Show knowledge base status",
        description="Display fact, log and link counts for the project",
    )

    rebuild_parser = subparsers.add_parser(
        "rebuild-index",
        help="Rebuild global knowledge index",
        description="Rebuild the search index and knowledge graph from all fact logs",
    )
    rebuild_parser.add_argument(
        "--relink",
        action="store_true",
        help="Relink every stored fact before rebuilding",
    )

    add_parser = subparsers.add_parser(
        "add",
        help="Store a fact",
        description="Append a fact to a directory's knowledge log and link it",
    )
    add_parser.add_argument("--directory", required=True, metavar="DIR",
                            help="Directory the fact belongs to")
    add_parser.add_argument("--subject", required=True, help="Short topic label")
    add_parser.add_argument("--fact", required=True, dest="content", help="Content of the fact")
    add_parser.add_argument("--keyword", action="append", default=[], dest="keywords",
                            help="Keyword (repeatable)")
    add_parser.add_argument("--citation", action="append", default=[], dest="citations",
                            help="Citation as file[:line-range] (repeatable)")
    add_parser.add_argument("--importance", choices=[i.value for i in Importance],
                            default=Importance.MEDIUM.value)
    add_parser.add_argument("--learned-from", default="cli", help="Provenance of the fact")
    add_parser.add_argument("--id", dest="fact_id", help="Fact id (generated if omitted)")
    add_parser.add_argument("--no-link", action="store_true",
                            help="Store the fact without linking it")

    relevant_parser = subparsers.add_parser(
        "relevant",
        help="Show knowledge relevant to a file",
        description="Print the knowledge that would be injected when FILE is read",
    )
    relevant_parser.add_argument("file", help="Path of the file")
    relevant_parser.add_argument("--keyword", action="append", dest="keywords",
                                 help="Keyword (repeatable, defaults to path-derived keywords)")
    relevant_parser.add_argument("--limit", type=int, default=None,
                                 help="Maximum number of facts (default: maxRelevantFacts)")


def handle_command(args: argparse.Namespace, config: PluginConfig) -> int:
    """Dispatch a parsed command. Returns the exit status."""
    project = Path(args.project)

    if args.command == "status":
        _print_status(project)

    elif args.command == "rebuild-index":
        if args.relink:
            relink_all(project, ranked=config.ranked_linking, lock_timeout=config.lock_timeout)
        index, graph = rebuild_all(project)
        print("Knowledge index rebuilt")
        print(f"  Keywords indexed: {len(index.keywords)}")
        print(f"  Facts in graph:   {len(graph.nodes)}")
        print(f"  Links in graph:   {len(graph.edges)}")

    elif args.command == "add":
        fact = _fact_from_args(args)
        if args.no_link:
            append_fact(args.directory, fact, timeout=config.lock_timeout)
            links: list[GraphEdge] = []
        else:
            links = learn_fact(
                args.directory,
                fact,
                project,
                ranked=config.ranked_linking,
                lock_timeout=config.lock_timeout,
            )
        _print_added(fact, links)

    elif args.command == "relevant":
        keywords = args.keywords if args.keywords else extract_path_keywords(args.file)
        limit = args.limit if args.limit is not None else config.max_relevant_facts
        facts = select_relevant_facts(args.file, keywords, limit=limit)
        if facts:
            print(format_facts_as_markdown(facts))
        else:
            print(f"No knowledge stored for {args.file}")

    else:
        print("Error: No command specified", file=sys.stderr)
        print("Usage: smart-codebase {status|rebuild-index|add|relevant}", file=sys.stderr)
        return 1

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    if not isinstance(logging.getLevelName(level), int):
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    config = load_config(args.project)
    if args.command and not config.is_command_enabled(args.command):
        print(f"Error: command '{args.command}' is disabled by configuration", file=sys.stderr)
        return 2

    try:
        return handle_command(args, config)
    except (LockTimeout, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


# =============================================================================
# Output Formatting Functions
# =============================================================================


def _fact_from_args(args: argparse.Namespace) -> Fact:
    fact = Fact(
        subject=args.subject,
        fact=args.content,
        citations=list(args.citations),
        importance=Importance(args.importance),
        learned_from=args.learned_from,
        keywords=list(args.keywords),
    )
    if args.fact_id:
        fact.id = args.fact_id
    return fact


def _print_status(project: Path) -> None:
    project_logs = load_project_facts(project)
    total_facts = sum(len(facts) for _, facts in project_logs)
    graph = load_graph(project)

    print("smart-codebase knowledge base status")
    print(f"  Fact logs:   {len(project_logs)}")
    print(f"  Facts:       {total_facts}")
    print(f"  Graph nodes: {len(graph.nodes)}")
    print(f"  Links:       {len(graph.edges)}")
    print(f"  Storage:     <dir>/{KNOWLEDGE_DIR_NAME}/{FACTS_FILE_NAME}")
    print(f"  Graph:       {CODEBASE_MEMORY_DIR}/{GRAPH_FILE}")


def _print_added(fact: Fact, links: list[GraphEdge]) -> None:
    print(f"Stored fact {fact.id}: {fact.subject} ({fact.importance.value} importance)")
    if fact.related_facts:
        print(f"  Related facts: {', '.join(fact.related_facts)}")
    print(f"  New links: {len(links)}")
