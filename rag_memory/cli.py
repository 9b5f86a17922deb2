"""
CLI utility for inspecting and maintaining memories.

Usage:
    rag-memory store user_42 "Prefers jazz while coding" --kind preference
    rag-memory search user_42 "what music do I like"
    rag-memory context user_42 "recommend something to listen to"
    rag-memory stats user_42
    rag-memory clear user_42 --yes
"""

import argparse
import json
import sys
from typing import List, Optional

from rag_memory.config.settings import Settings
from rag_memory.engine import MemoryEngine, create_memory_engine
from rag_memory.memory.schemas import MEMORY_KINDS
from rag_memory.telemetry import configure_logging


def cmd_store(engine: MemoryEngine, args: argparse.Namespace) -> int:
    record = engine.store_memory(
        args.owner,
        args.content,
        kind=args.kind,
        tags=args.tag or [],
        salience=args.salience,
    )
    if record is None:
        print("❌ Memory could not be stored (see logs)")
        return 1
    print(f"✅ Stored {record.id} ({record.kind}, salience {record.salience:.2f})")
    return 0


def cmd_search(engine: MemoryEngine, args: argparse.Namespace) -> int:
    results = engine.search_memories(args.owner, args.query, limit=args.limit, min_similarity=args.min_similarity)
    if not results:
        print("No matching memories.")
        return 0

    print(f"{'Similarity':>10}  {'Kind':<11} {'ID':<17} Content")
    print("=" * 80)
    for scored in results:
        m = scored.memory
        print(f"{scored.similarity:>10.3f}  {m.kind:<11} {m.id:<17} {m.snippet(60)}")
    return 0


def cmd_context(engine: MemoryEngine, args: argparse.Namespace) -> int:
    result = engine.build_context(args.owner, args.query)
    if result.is_empty:
        print("(no relevant memories)")
        return 0
    print(result.context)
    print(f"\n(used {result.metadata.used_count} memories, {result.metadata.used_chars} chars)")
    return 0


def cmd_stats(engine: MemoryEngine, args: argparse.Namespace) -> int:
    stats = engine.get_memory_stats(args.owner)
    print(f"📊 Memories for {args.owner}: {stats.total}\n")
    print(f"{'Kind':<12} {'Count':>8} {'Avg salience':>14}")
    print("=" * 36)
    for kind, ks in sorted(stats.by_kind.items()):
        print(f"{kind:<12} {ks.count:>8,} {ks.avg_salience:>14.2f}")
    print("\nProviders:")
    print(json.dumps(engine.embedder.stats(), indent=2))
    return 0


def cmd_clear(engine: MemoryEngine, args: argparse.Namespace) -> int:
    if not args.yes:
        print("❌ Refusing to clear memories without --yes")
        return 1
    count = engine.clear_memories(args.owner)
    print(f"🗑️  Deleted {count:,} memories for {args.owner}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rag-memory", description="Inspect and maintain user memories")
    parser.add_argument("--db", help="Memory database path (overrides RAG_MEMORY_DB)")
    parser.add_argument("--offline", action="store_true", help="Use hash embeddings only")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("store", help="Store a memory")
    p.add_argument("owner")
    p.add_argument("content")
    p.add_argument("--kind", choices=MEMORY_KINDS, default="fact")
    p.add_argument("--tag", action="append")
    p.add_argument("--salience", type=float, default=0.7)
    p.set_defaults(func=cmd_store)

    p = sub.add_parser("search", help="Similarity search")
    p.add_argument("owner")
    p.add_argument("query")
    p.add_argument("--limit", type=int, default=10)
    p.add_argument("--min-similarity", type=float, default=0.6)
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("context", help="Build the memory context block for a query")
    p.add_argument("owner")
    p.add_argument("query")
    p.set_defaults(func=cmd_context)

    p = sub.add_parser("stats", help="Per-kind counts and provider health")
    p.add_argument("owner")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("clear", help="Delete every memory of an owner")
    p.add_argument("owner")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_clear)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = Settings.from_env()
    updates = {}
    if args.db:
        updates["store"] = settings.store.model_copy(update={"db_path": args.db})
    if args.offline:
        updates["embedding"] = settings.embedding.model_copy(update={"force_fallback": True})
    if updates:
        settings = settings.model_copy(update=updates)

    configure_logging(settings.logging.level, settings.logging.json_logs)
    engine = create_memory_engine(settings)
    try:
        return args.func(engine, args)
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
