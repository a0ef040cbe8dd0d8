"""Enrichment engine: cache, site-type detection, provider fan-out, aggregation.

One engine is meant to be built per run and shared by every concurrent
enrichment call in that run. It owns the rate-limit windows, the result cache
and (unless one is injected) the HTTP client.

Failure model:
- configuration / cache store problems raise `ConfigError` from the constructor
- a malformed URL raises `InvalidURLError` from `enrich_url`
- everything else (provider timeouts, HTTP errors, missing tools, rate-limit
  denials, cache I/O) degrades to "no adjustment" and is only logged
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from .cache import ResultCache
from .config import EnrichmentConfig, load_config
from .detection import detect_site_type
from .fetch import new_client
from .models import SIGNAL_FIELDS, EnrichedResult, EnrichmentSignals, ScoreAdjustment
from .normalize import NormalizedURL, normalize_url
from .providers import Provider, ProviderContext, Registry, builtin_providers
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _check_score(base_score: Any) -> float:
    if isinstance(base_score, bool) or not isinstance(base_score, (int, float)):
        raise ValueError(f"base_score must be a number, got {base_score!r}")
    score = float(base_score)
    if not math.isfinite(score):
        raise ValueError(f"base_score must be finite, got {base_score!r}")
    return score


class EnrichmentEngine:
    def __init__(
        self,
        config: EnrichmentConfig,
        *,
        registry: Optional[Registry] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
        load_plugins: bool = True,
    ):
        self.config = config
        self.cache = ResultCache(config.cache.store_path, ttl_hours=config.cache.ttl_hours)
        self.rate_limiter = RateLimiter()
        self._clock = clock or _utc_now

        if registry is None:
            registry = Registry(builtin_providers(config))
            if load_plugins:
                registry.extend(Registry.load_entrypoints(config))
        self.registry = registry

        self._owns_client = client is None
        self.client = client or new_client(user_agent=config.engine.user_agent)

        names = ",".join(p.name for p in self.roster) or "none"
        logger.info(
            f"Enrichment engine ready: providers={names} "
            f"cache={config.cache.store_path} ttl={config.cache.ttl_hours}h"
        )

    @classmethod
    def from_path(cls, path: Optional[str] = None, **kwargs: Any) -> EnrichmentEngine:
        return cls(load_config(path), **kwargs)

    @property
    def roster(self) -> list[Provider]:
        return self.registry.roster(self.config)

    async def __aenter__(self) -> EnrichmentEngine:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # =========================================================================
    # ENRICHMENT
    # =========================================================================

    async def enrich_url(self, url: str, base_score: float) -> EnrichedResult:
        """Enrich one URL. Raises only for a malformed URL or score."""
        target = normalize_url(url)
        score = _check_score(base_score)

        cached = await asyncio.to_thread(self.cache.get, url, now=self._clock())
        if cached is not None:
            logger.debug(f"Cache hit: {url}")
            return cached

        site_type = await detect_site_type(
            self.client,
            target.canonical,
            timeout=self.config.engine.detection_timeout_seconds,
            fixtures=self.config.fixtures,
        )

        adjustments, signals = await self._run_providers(target)

        result = EnrichedResult(
            url=url,
            base_score=score,
            enriched_score=score + sum(a.adjustment for a in adjustments),
            adjustments=tuple(adjustments),
            site_type=site_type,
            signals=EnrichmentSignals(**signals),
            computed_at=self._clock(),
        )

        await asyncio.to_thread(self.cache.set, url, result, now=self._clock())
        return result

    def _admitted(self) -> list[Provider]:
        """Providers that may run now; each admission spends one unit of quota."""
        admitted: list[Provider] = []
        for provider in self.roster:
            if not provider.is_available():
                logger.debug(f"Provider {provider.name} unavailable, skipping")
                continue
            settings = self.config.provider(provider.name)
            if not self.rate_limiter.try_admit(provider.name, settings.rate_limit_per_hour, now=self._clock()):
                continue
            admitted.append(provider)
        return admitted

    async def _call_provider(
        self, provider: Provider, target: NormalizedURL
    ) -> tuple[Optional[ScoreAdjustment], ProviderContext]:
        timeout = self.config.provider(provider.name).timeout_seconds
        ctx = ProviderContext(client=self.client, host=target.host, timeout=timeout, clock=self._clock)
        try:
            adj = await asyncio.wait_for(provider.enrich(target.canonical, ctx), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Provider {provider.name} timed out after {timeout}s for {target.canonical}")
            return None, ctx
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Provider {provider.name} failed for {target.canonical}: {e!r}")
            return None, ctx
        return adj, ctx

    async def _run_providers(self, target: NormalizedURL) -> tuple[list[ScoreAdjustment], dict[str, Any]]:
        admitted = self._admitted()

        if self.config.engine.parallel_providers:
            # gather() keeps roster order, so the adjustments stay deterministic.
            outcomes = await asyncio.gather(*(self._call_provider(p, target) for p in admitted))
        else:
            outcomes = [await self._call_provider(p, target) for p in admitted]

        adjustments: list[ScoreAdjustment] = []
        signals: dict[str, Any] = {}
        for provider, (adj, ctx) in zip(admitted, outcomes):
            if adj is None:
                continue
            adjustments.append(adj)
            if provider.signal in SIGNAL_FIELDS:
                signals[provider.signal] = ctx.observations.get(provider.signal, True)
        return adjustments, signals

    async def enrich_many(
        self,
        items: Iterable[tuple[str, float]],
        *,
        max_concurrency: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Enrich many (url, base_score) pairs; results come back in input order.

        Invalid inputs become `{"url", "base_score", "error"}` entries instead of
        failing the batch.
        """
        pairs = list(items)
        if not pairs:
            return []

        sem = asyncio.Semaphore(max(1, max_concurrency or self.config.engine.batch_concurrency))

        async def _one(url: str, base_score: float) -> dict[str, Any]:
            async with sem:
                try:
                    result = await self.enrich_url(url, base_score)
                except ValueError as e:
                    logger.warning(f"Skipping {url!r}: {e}")
                    return {"url": url, "base_score": base_score, "error": str(e)}
                return result.to_dict()

        results = await asyncio.gather(*(_one(u, s) for u, s in pairs))

        failed = sum(1 for r in results if "error" in r)
        logger.info(f"Batch enrichment complete: {len(results) - failed}/{len(results)} enriched")
        return list(results)

    def provider_status(self) -> list[dict[str, Any]]:
        now = self._clock()
        status = []
        for name, provider in self.registry.providers.items():
            settings = self.config.provider(name)
            status.append(
                {
                    "name": name,
                    "enabled": self.config.is_enabled(name),
                    "available": provider.is_available(),
                    "rate_limit_per_hour": settings.rate_limit_per_hour,
                    "timeout_seconds": settings.timeout_seconds,
                    "remaining": self.rate_limiter.remaining(name, settings.rate_limit_per_hour, now=now),
                }
            )
        return status


async def enrich_score(url: str, base_score: float, config_path: Optional[str] = None) -> EnrichedResult:
    """One-shot helper: load config, build an engine, enrich one URL."""
    async with EnrichmentEngine.from_path(config_path) as engine:
        return await engine.enrich_url(url, base_score)

