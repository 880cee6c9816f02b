"""CLI tool for property graph inspection and management"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from graph_logging import setup_logging

from .config import GraphConfig
from .errors import GraphError, NotFoundError
from .store import GraphStore

logger = logging.getLogger(__name__)


def _open_store(config: GraphConfig, data_path: Optional[Path] = None) -> GraphStore:
    if data_path is not None:
        config.data_path = Path(data_path).expanduser()
    return GraphStore.from_config(config)


def _describe(entity) -> str:
    metadata = {k: v for k, v in entity.metadata.items() if k != "embedding"}
    metadata_str = f" | metadata: {json.dumps(metadata)}" if metadata else ""
    return f"{entity.name} ({entity.id}){metadata_str}"


def cmd_stats(store: GraphStore):
    """Show node/relation counts and the most common relation names"""
    stats = store.get_stats()
    names: dict[str, int] = {}
    for relation in store.list_relations():
        names[relation.name] = names.get(relation.name, 0) + 1

    print("=" * 60)
    print("Property Graph Statistics")
    print("=" * 60)
    print(f"\nData file: {getattr(store.codec, 'path', '<memory>')}")
    print(f"\nTotal Nodes: {stats['node_count']}")
    print(f"Total Relations: {stats['relation_count']}")
    print(f"Average Degree: {stats['avg_degree']:.2f}")

    if names:
        print("\n--- Relations by Name ---")
        for name, count in sorted(names.items(), key=lambda item: item[1], reverse=True):
            print(f"  {name:20s}: {count:5d}")

    print("=" * 60)


def cmd_search(store: GraphStore, term: str, limit: int = 20):
    """Search for nodes whose name contains `term` (case-insensitive)"""
    results = store.search_nodes({"name": {"contains": term}})[:limit]

    print(f"\nSearch results for '{term}' (limit={limit}):")
    print("-" * 80)

    if not results:
        print("No matching nodes found.")
        return

    for node in results:
        print(f"  {_describe(node)}")


def cmd_neighbors(store: GraphStore, node_id: str, direction: str = "both", limit: int = 20):
    """Show relations adjacent to a node"""
    node = store.get_node(node_id)
    if node is None:
        raise NotFoundError(f"No node found with ID '{node_id}'")
    print(f"Found node: {_describe(node)}")

    neighbors = store.get_neighbors(node_id, direction)[:limit]

    print(f"\n{direction.capitalize()} relations (limit={limit}):")
    print("-" * 80)

    if not neighbors:
        print("No relations found.")
        return

    for relation, other, rel_direction in neighbors:
        arrow = f"--[{relation.name}]-->" if rel_direction == "outgoing" else f"<--[{relation.name}]--"
        print(f"  {arrow} {other.name} ({other.id})")


def cmd_traverse(
    store: GraphStore,
    node_id: str,
    max_depth: Optional[int] = None,
    direction: str = "both",
    limit: int = 20,
):
    """Print the triplets reached by a depth-first walk from a node"""
    if store.get_node(node_id) is None:
        raise NotFoundError(f"No node found with ID '{node_id}'")
    triplets = store.traverse_from_node(node_id, max_depth=max_depth, directions=[direction])

    depth_str = "unbounded" if max_depth is None else str(max_depth)
    print(f"\nTraversal from {node_id} (max depth={depth_str}, {len(triplets)} triplets):")
    print("-" * 80)
    for source, relation, target in triplets[:limit]:
        print(f"  {source.name} --[{relation.name}]--> {target.name}")


def cmd_export(store: GraphStore, output_path: str):
    """Export the graph to a JSON file"""
    snapshot = store.export_snapshot()

    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(snapshot, f, indent=2)

    print(f"Exported {len(snapshot['nodes'])} nodes and {len(snapshot['relations'])} relations to {output_path}")


def cmd_import(store: GraphStore, input_path: str):
    """Replace the graph with the contents of a JSON file"""
    input_file = Path(input_path)
    if not input_file.exists():
        raise FileNotFoundError(f"File not found: {input_path}")

    with open(input_file, "r", encoding="utf-8") as f:
        snapshot = json.load(f)

    store.import_snapshot(snapshot)
    if store.is_dirty and not store.flush():
        raise GraphError(f"Imported snapshot could not be written to {store.codec.path}")

    print(f"Imported {len(snapshot.get('nodes', []))} nodes and "
          f"{len(snapshot.get('relations', []))} relations from {input_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="propgraph",
        description="Property graph CLI - Inspect and manage a JSON-backed graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show statistics
  propgraph --stats

  # Search nodes by name
  propgraph --search "asimov"

  # Show relations of a node
  propgraph --neighbors 3f1c... --direction incoming

  # Walk the graph
  propgraph --traverse 3f1c... --max-depth 2

  # Export/import
  propgraph --export graph_backup.json
  propgraph --import graph_backup.json

Environment Variables:
  PROPGRAPH_DATA_PATH            Graph file (default: <state_dir>/graph.json)
  STATE_DIR or PROPGRAPH_STATE_DIR  State directory (default: ~/.local/state/propgraph)
  PROPGRAPH_LOG_LEVEL, PROPGRAPH_LOG_DIR, PROPGRAPH_ID_STRATEGY, PROPGRAPH_AUTO_FLUSH
        """,
    )

    commands = parser.add_mutually_exclusive_group(required=True)
    commands.add_argument("--stats", action="store_true", help="Show graph statistics")
    commands.add_argument("--search", metavar="TERM", help="Search nodes by name")
    commands.add_argument("--neighbors", metavar="ID", help="Show relations of a node")
    commands.add_argument("--traverse", metavar="ID", help="Depth-first traversal from a node")
    commands.add_argument("--export", metavar="PATH", help="Export graph to JSON file")
    commands.add_argument("--import", metavar="PATH", dest="import_path", help="Replace graph from JSON file")

    parser.add_argument("--direction", choices=["outgoing", "incoming", "both"], default="both",
                        help="Relation direction for --neighbors/--traverse (default: both)")
    parser.add_argument("--max-depth", type=int, help="Depth limit for --traverse (default: unbounded)")
    parser.add_argument("--limit", type=int, default=20, help="Result limit (default: 20)")
    parser.add_argument("--data-path", type=Path, help="Override graph file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entrypoint"""
    args = build_parser().parse_args(argv)

    try:
        config = GraphConfig.from_env()
    except GraphError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        "propgraph",
        log_dir=config.log_dir,
        log_level="DEBUG" if args.verbose else config.log_level,
    )

    try:
        store = _open_store(config, args.data_path)
        if args.stats:
            cmd_stats(store)
        elif args.search:
            cmd_search(store, term=args.search, limit=args.limit)
        elif args.neighbors:
            cmd_neighbors(store, node_id=args.neighbors, direction=args.direction, limit=args.limit)
        elif args.traverse:
            cmd_traverse(store, node_id=args.traverse, max_depth=args.max_depth,
                         direction=args.direction, limit=args.limit)
        elif args.export:
            cmd_export(store, output_path=args.export)
        elif args.import_path:
            cmd_import(store, input_path=args.import_path)
    except (GraphError, OSError, json.JSONDecodeError) as e:
        logger.error(f"Command failed: {e}", exc_info=args.verbose)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
