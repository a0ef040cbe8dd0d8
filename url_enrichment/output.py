"""Output helpers (batch summaries, NDJSON, exit codes)."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_INVALID_INPUT = 2
EXIT_CONFIG = 3


def format_adjustment(adj: dict[str, Any]) -> str:
    return f"{adj.get('source', '?')}: {float(adj.get('adjustment', 0.0)):+.1f}% ({adj.get('reason', '')})"


def batch_summary(results: list[dict[str, Any]]) -> dict[str, Any]:
    enriched = [r for r in results if "error" not in r]
    site_types: dict[str, int] = {}
    for r in enriched:
        st = str(r.get("site_type", "Unknown"))
        site_types[st] = site_types.get(st, 0) + 1

    improvements = [float(r["enriched_score"]) - float(r["base_score"]) for r in enriched]
    return {
        "total": len(results),
        "enriched": len(enriched),
        "errors": len(results) - len(enriched),
        "adjusted": sum(1 for r in enriched if r.get("adjustments")),
        "avg_improvement": round(sum(improvements) / len(improvements), 2) if improvements else 0.0,
        "site_types": dict(sorted(site_types.items())),
    }


def to_ndjson(rows: Iterable[dict[str, Any]]) -> str:
    return "\n".join(json.dumps(r, ensure_ascii=False) for r in rows)


def exit_code_from_results(results: list[dict[str, Any]]) -> int:
    """0 when every record was enriched, 1 when some inputs were rejected."""
    if any("error" in r for r in results):
        return EXIT_PARTIAL
    return EXIT_OK
