#!/usr/bin/env python3
"""
URL Enrichment - CLI entry point
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
import sys
from collections.abc import Iterator
from datetime import timedelta
from typing import Any, Optional

from .cache import ResultCache, parse_ttl
from .config import EnrichmentConfig, load_config
from .engine import EnrichmentEngine
from .errors import ConfigError, InvalidURLError
from .fetch import fetch_many
from .output import (
    EXIT_CONFIG,
    EXIT_INVALID_INPUT,
    EXIT_OK,
    batch_summary,
    exit_code_from_results,
    format_adjustment,
    to_ndjson,
)
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

_SCORE_KEYS = ("final_score", "base_score", "score")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="url-enrichment",
        description="Adjust URL relevance scores with external signals",
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to TOML config (default: $URL_ENRICHMENT_CONFIG or data/api_config.toml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p_enrich = sub.add_parser("enrich", help="Enrich a single URL")
    p_enrich.add_argument("url", help="URL to enrich")
    p_enrich.add_argument("--score", "-s", type=float, required=True, help="Base score")
    p_enrich.add_argument("--format", choices=["pretty", "json"], default="pretty")

    p_batch = sub.add_parser("batch", help="Enrich scored records from a file")
    p_batch.add_argument(
        "file", help="JSONL records ({url, final_score}) or lines of 'URL SCORE' / 'URL,SCORE'"
    )
    p_batch.add_argument("--workers", "-w", type=int, default=None, help="Max concurrent enrichments")
    p_batch.add_argument("--format", choices=["pretty", "json", "ndjson"], default="pretty")

    p_collect = sub.add_parser("collect", help="Fetch URLs in parallel and report pass/fail + timing")
    p_collect.add_argument("file", help="File with URLs (one per line)")
    p_collect.add_argument("--concurrent", type=int, default=100, help="Maximum concurrent downloads")
    p_collect.add_argument("--timeout", "-t", type=float, default=30, help="Timeout per request in seconds")
    p_collect.add_argument("--retries", type=int, default=3, help="Retries for transient failures")

    p_cache = sub.add_parser("cache", help="Cache administration")
    p_cache.add_argument("action", choices=["stats", "reset", "prune"])
    p_cache.add_argument(
        "--older-than", default=None, help="prune: max age like 3600, 90m, 24h, 7d (default: cache TTL)"
    )

    sub.add_parser("providers", help="List providers and their status")
    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.command == "collect":
            exit_code = cmd_collect(args)
        else:
            config = load_config(args.config)
            handler = {
                "enrich": cmd_enrich,
                "batch": cmd_batch,
                "cache": cmd_cache,
                "providers": cmd_providers,
            }[args.command]
            exit_code = handler(args, config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        exit_code = EXIT_CONFIG

    raise SystemExit(exit_code)


# =============================================================================
# COMMANDS
# =============================================================================


def cmd_enrich(args: argparse.Namespace, config: EnrichmentConfig) -> int:
    async def _run() -> dict[str, Any]:
        async with EnrichmentEngine(config) as engine:
            return (await engine.enrich_url(args.url, args.score)).to_dict()

    try:
        result = asyncio.run(_run())
    except InvalidURLError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    if args.format == "json":
        print(json.dumps(result, indent=2, ensure_ascii=False))
    else:
        print_human_readable(result)
    return EXIT_OK


def cmd_batch(args: argparse.Namespace, config: EnrichmentConfig) -> int:
    records = list(iter_records_from_file(args.file))
    logger.info(f"Loaded {len(records)} records from {args.file}")

    async def _run() -> list[dict[str, Any]]:
        async with EnrichmentEngine(config) as engine:
            return await engine.enrich_many(records, max_concurrency=args.workers)

    results = asyncio.run(_run())

    if args.format == "json":
        print(json.dumps(results, indent=2, ensure_ascii=False))
    elif args.format == "ndjson":
        print(to_ndjson(results))
    else:
        print_batch_results(results)
    return exit_code_from_results(results)


def cmd_collect(args: argparse.Namespace) -> int:
    urls = list(iter_urls_from_file(args.file))
    logger.info(f"Loaded {len(urls)} URLs from {args.file}")

    results = asyncio.run(
        fetch_many(
            urls,
            max_concurrency=args.concurrent,
            timeout=args.timeout,
            retry_policy=RetryPolicy(retries=args.retries),
        )
    )

    print(to_ndjson(r.summary() for r in results))

    total = len(results)
    ok = sum(1 for r in results if r.success)
    rate = (ok / total * 100.0) if total else 0.0
    print(f"Collection complete: {ok}/{total} successful ({rate:.1f}%)", file=sys.stderr)
    return EXIT_OK


def cmd_cache(args: argparse.Namespace, config: EnrichmentConfig) -> int:
    cache = ResultCache(config.cache.store_path, ttl_hours=config.cache.ttl_hours)
    if args.action == "reset":
        cache.reset()
        print(f"Cache reset: {cache.path}")
    elif args.action == "prune":
        older_than = None
        if args.older_than:
            try:
                older_than = timedelta(seconds=parse_ttl(args.older_than))
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return EXIT_INVALID_INPUT
        deleted = cache.prune_expired(older_than=older_than)
        print(f"Pruned {deleted} expired entries from {cache.path}")
    else:
        stats = cache.stats()
        print(f"Cache:   {stats.path}")
        print(f"Entries: {stats.rows}")
        print(f"Oldest:  {stats.oldest.isoformat() if stats.oldest else '-'}")
        print(f"Newest:  {stats.newest.isoformat() if stats.newest else '-'}")
    return EXIT_OK


def cmd_providers(args: argparse.Namespace, config: EnrichmentConfig) -> int:
    async def _run() -> list[dict[str, Any]]:
        async with EnrichmentEngine(config) as engine:
            return engine.provider_status()

    for p in asyncio.run(_run()):
        state = "enabled" if p["enabled"] else "disabled"
        if p["enabled"] and not p["available"]:
            state = "unavailable"
        print(
            f"  {p['name']:<10} {state:<12} "
            f"{p['rate_limit_per_hour']:>5}/h  timeout {p['timeout_seconds']}s"
        )
    return EXIT_OK


# =============================================================================
# INPUT
# =============================================================================


def iter_urls_from_file(filepath: str) -> Iterator[str]:
    """Yield URLs from a file (streaming).

    Skips empty lines and comments.
    """
    with open(filepath) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                yield line


def parse_record(line: str) -> tuple[str, float]:
    """Parse one batch line: a JSON object or 'URL SCORE' / 'URL,SCORE'."""
    if line.startswith("{"):
        data = json.loads(line)
        url = data.get("url")
        if not isinstance(url, str):
            raise ValueError("record has no 'url'")
        for key in _SCORE_KEYS:
            if key in data:
                return url, float(data[key])
        raise ValueError(f"record for {url} has no score ({', '.join(_SCORE_KEYS)})")

    parts = re.split(r"[,\s]+", line.strip())
    if len(parts) != 2:
        raise ValueError(f"expected 'URL SCORE', got {line!r}")
    return parts[0], float(parts[1])


def iter_records_from_file(filepath: str) -> Iterator[tuple[str, float]]:
    for lineno, line in enumerate(iter_urls_from_file(filepath), start=1):
        try:
            yield parse_record(line)
        except ValueError as e:
            logger.warning(f"{filepath}:{lineno}: skipping malformed record: {e}")


# =============================================================================
# PRETTY OUTPUT
# =============================================================================


def print_human_readable(result: dict[str, Any]) -> None:
    """Print human-readable output."""
    print("\n🔎 URL Enrichment Report")
    print(f"{'=' * 50}")
    print(f"URL:       {result['url']}")
    print(f"Site type: {result.get('site_type', 'Unknown')}")
    print(f"{'=' * 50}")

    base = float(result["base_score"])
    enriched = float(result["enriched_score"])
    print(f"\n📊 Base score:     {base:.1f}")
    print(f"📈 Enriched score: {enriched:.1f} ({enriched - base:+.1f})")

    adjustments = result.get("adjustments") or []
    print("\n📋 Adjustments:")
    print(f"{'-' * 50}")
    if not adjustments:
        print("  (none)")
    for adj in adjustments:
        print(f"  • {format_adjustment(adj)}")

    signals = {k: v for k, v in (result.get("signals") or {}).items() if v is not None}
    if signals:
        print("\n🧭 Signals:")
        for key, value in signals.items():
            print(f"  {key}: {value}")

    print(f"\n⏱️  Computed at: {result.get('computed_at')}")


def print_batch_results(results: list[dict[str, Any]]) -> None:
    """Print batch results in human-readable format."""
    summary = batch_summary(results)

    print("\n🔎 URL Enrichment Batch Report")
    print(f"{'=' * 60}")
    print(f"Total records: {summary['total']}")
    print(f"Enriched:      {summary['enriched']}")
    print(f"Errors:        {summary['errors']}")
    print(f"Adjusted:      {summary['adjusted']}")
    print(f"Avg change:    {summary['avg_improvement']:+.2f}")

    print(f"\n{'=' * 60}")
    print("📋 Results:")
    print(f"{'-' * 60}")

    for result in results:
        url = result.get("url", "unknown")
        if "error" in result:
            print(f"  ❌ {url}")
            print(f"      Error: {result['error']}")
            continue
        base = float(result["base_score"])
        enriched = float(result["enriched_score"])
        print(f"  [{base:>5.1f} -> {enriched:>5.1f}] {result.get('site_type', 'Unknown'):<12} {url}")
        for adj in result.get("adjustments") or []:
            print(f"      {format_adjustment(adj)}")

    print()


if __name__ == "__main__":
    main()
