"""Lumina CLI main entry point.

Commands:
  index     Index a vault directory
  rebuild   Back up, clear and rebuild the index
  search    Search the indexed vault
  similar   Find chunks similar to a chunk
  stats     Show index and search statistics
  validate  Check the persisted index
  config    Show merged settings
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="lumina",
        description="Lumina: semantic search over a vault of notes and code",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    parser.add_argument("--data-dir", default=None, help="Index data directory (default: ~/.lumina)")
    subparsers = parser.add_subparsers(dest="command")

    # index
    index_parser = subparsers.add_parser("index", help="Index a vault directory")
    index_parser.add_argument("path", nargs="?", default=None, help="Vault directory")
    index_parser.add_argument("--force", action="store_true", help="Re-index unchanged files too")

    # rebuild
    rebuild_parser = subparsers.add_parser("rebuild", help="Rebuild the index from scratch")
    rebuild_parser.add_argument("path", nargs="?", default=None, help="Vault directory")

    # search
    search_parser = subparsers.add_parser("search", help="Search the indexed vault")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum results")
    search_parser.add_argument("--threshold", type=float, default=None, help="Minimum similarity")
    search_parser.add_argument("--path", dest="file_path", default=None, help="File path regex filter")
    search_parser.add_argument("--file-type", default=None, help="File extension filter")
    search_parser.add_argument("--type", dest="chunk_type", default=None, help="Chunk type filter")
    search_parser.add_argument("--no-rerank", action="store_true", help="Rank by raw similarity only")
    search_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    # similar
    similar_parser = subparsers.add_parser("similar", help="Find chunks similar to a chunk")
    similar_parser.add_argument("chunk_id", help="Reference chunk ID")
    similar_parser.add_argument("--limit", type=int, default=None, help="Maximum results")

    # stats
    subparsers.add_parser("stats", help="Show index and search statistics")

    # validate
    subparsers.add_parser("validate", help="Check the persisted index")

    # config
    config_parser = subparsers.add_parser("config", help="Show merged settings")
    config_parser.add_argument("action", choices=["show"], help="Action to perform")
    config_parser.add_argument("--vault", default=None, help="Vault directory for vault-level settings")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 1

    commands = {
        "index": cmd_index,
        "rebuild": cmd_rebuild,
        "search": cmd_search,
        "similar": cmd_similar,
        "stats": cmd_stats,
        "validate": cmd_validate,
        "config": cmd_config,
    }
    try:
        return commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _build_services(args: argparse.Namespace, vault: str | None = None):
    from lumina.config import load_settings
    from lumina.services import create_services

    settings = load_settings(Path(vault).resolve() if vault else None)
    if args.data_dir:
        settings.data_dir = args.data_dir
    return create_services(settings)


def _resolve_vault(args: argparse.Namespace, services) -> str | None:
    return args.path or services.settings.vault_path


def _print_progress(event) -> None:
    print(
        f"  {event.progress:5.1f}%  {event.processed_count}/{event.total_count} files, "
        f"{event.chunk_count} chunks",
        flush=True,
    )


def cmd_index(args: argparse.Namespace) -> int:
    """Index a vault directory."""
    services = _build_services(args, args.path)
    vault = _resolve_vault(args, services)
    if not vault:
        print("No vault path given or configured.", file=sys.stderr)
        return 1

    print(f"Indexing {vault} {'(forced)' if args.force else '(incremental)'}...")
    result = asyncio.run(
        services.indexer.index_vault(vault, force=args.force, on_progress=_print_progress)
    )
    if result.queued:
        print("Indexing already in progress; request queued.")
        return 0
    stats = result.stats
    print(
        f"Indexed {stats.indexed_files}/{stats.total_files} files, "
        f"{stats.total_chunks} chunks, {stats.errors} errors"
    )
    return 0 if stats.errors == 0 else 1


def cmd_rebuild(args: argparse.Namespace) -> int:
    """Rebuild the index from scratch."""
    services = _build_services(args, args.path)
    vault = _resolve_vault(args, services)
    if not vault:
        print("No vault path given or configured.", file=sys.stderr)
        return 1

    print(f"Rebuilding index for {vault}...")
    result = asyncio.run(services.indexer.rebuild_index(vault, on_progress=_print_progress))
    if result.queued:
        print("Indexing already in progress; request queued.")
        return 0
    stats = result.stats
    print(f"Rebuilt: {stats.indexed_files} files, {stats.total_chunks} chunks")
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    """Search the indexed vault."""
    from lumina.vault.search import SearchFilters

    services = _build_services(args)
    settings = services.settings
    filters = SearchFilters(
        file_path=args.file_path,
        file_type=args.file_type,
        type=args.chunk_type,
    )
    results = asyncio.run(services.search.search(
        args.query,
        threshold=args.threshold if args.threshold is not None else settings.search_threshold,
        limit=args.limit or settings.search_limit,
        filters=filters,
        rerank=not args.no_rerank,
    ))

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return 0

    if not results:
        print("No results.")
        return 0
    for r in results:
        chunk = r.chunk
        preview = " ".join(chunk.text.split())[:120]
        print(f"{r.rank_score:.3f}  {chunk.file_path}:{chunk.start}  [{chunk.type.value}] {chunk.id}")
        print(f"       {preview}")
    return 0


def cmd_similar(args: argparse.Namespace) -> int:
    """Find chunks similar to a chunk."""
    services = _build_services(args)
    results = services.search.find_similar(
        args.chunk_id,
        limit=args.limit or services.settings.similar_limit,
    )
    if not results:
        print("No similar chunks.")
        return 0
    for r in results:
        print(f"{r.score:.3f}  {r.chunk.file_path}  {r.chunk.id}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show index and search statistics."""
    services = _build_services(args)
    print(json.dumps({
        "index": services.indexer.get_stats(),
        "search": services.search.get_stats(),
    }, indent=2))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Check the persisted index."""
    services = _build_services(args)
    verdict = services.indexer.validate_index()
    if verdict.valid:
        print("Index is valid.")
        return 0
    print(f"Index is invalid: {verdict.reason}")
    return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Show merged settings."""
    from lumina.config import load_settings, validate_settings

    settings = load_settings(Path(args.vault).resolve() if args.vault else None)
    if args.data_dir:
        settings.data_dir = args.data_dir
    print(json.dumps(settings.to_dict(), indent=2))
    errors = validate_settings(settings)
    for error in errors:
        print(f"Invalid setting: {error}", file=sys.stderr)
    return 1 if errors else 0
