import asyncio
import os
import sqlite3
import tempfile
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from url_enrichment.cache import ResultCache
from url_enrichment.engine import EnrichmentEngine, enrich_score
from url_enrichment.errors import ConfigError, InvalidURLError
from url_enrichment.models import SiteType
from url_enrichment.providers import Registry

from tests._support import Clock, FakeProvider, make_config, mock_client


class _EngineTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = os.path.join(self._tmp.name, "cache.sqlite")
        self.clock = Clock()
        self.client = mock_client()

    async def asyncTearDown(self):
        await self.client.aclose()
        self._tmp.cleanup()

    def engine(self, config, providers=None, client=None):
        registry = Registry({p.name: p for p in providers}) if providers is not None else None
        return EnrichmentEngine(
            config, registry=registry, client=client or self.client, clock=self.clock, load_plugins=False
        )


class TestEnrichScenarios(_EngineTestCase):
    async def test_all_disabled_returns_base_score(self):
        engine = self.engine(make_config(self.store))
        r = await engine.enrich_url("https://example.com", 50.0)

        self.assertEqual(r.enriched_score, 50.0)
        self.assertEqual(r.adjustments, ())
        self.assertEqual(r.site_type, SiteType.UNKNOWN)
        self.assertEqual(r.computed_at, self.clock.now)

    async def test_trending_host_gets_boost(self):
        engine = self.engine(make_config(self.store, enabled=("trends",)))
        r = await engine.enrich_url("https://techstore.com", 70.0)

        self.assertEqual(r.enriched_score, 90.0)
        self.assertEqual([a.source for a in r.adjustments], ["Trends"])
        self.assertTrue(r.signals.is_trending)
        self.assertIsNone(r.signals.is_shopify)

    async def test_shopify_store_detected_and_boosted(self):
        client = mock_client(lambda req: httpx.Response(200, text='<script src="//cdn.shopify.com/x.js">'))
        try:
            engine = self.engine(make_config(self.store, enabled=("shopify",)), client=client)
            r = await engine.enrich_url("https://store.test", 40.0)
        finally:
            await client.aclose()

        self.assertEqual(r.site_type, SiteType.SHOPIFY)
        self.assertEqual(r.enriched_score, 55.0)
        self.assertTrue(r.signals.is_shopify)

    async def test_old_domain_whois_boost(self):
        engine = self.engine(make_config(self.store, enabled=("whois",)))
        with patch(
            "url_enrichment.providers.whois.run_whois", new=AsyncMock(return_value="Creation Date: 2005-06-01\n")
        ):
            r = await engine.enrich_url("https://example.com", 10.0)

        self.assertEqual(r.enriched_score, 15.0)
        self.assertEqual(r.adjustments[0].source, "Whois")
        self.assertGreater(r.signals.domain_age_years, 20.0)

    async def test_domain_age_uses_engine_clock(self):
        engine = self.engine(make_config(self.store, enabled=("whois",)))
        with patch(
            "url_enrichment.providers.whois.run_whois", new=AsyncMock(return_value="Creation Date: 2020-02-18\n")
        ):
            r = await engine.enrich_url("https://example.com", 10.0)

        self.assertEqual(r.adjustments[0].reason, "Domain age: 6.0 years")
        self.assertAlmostEqual(r.signals.domain_age_years, 6.0, places=1)

    async def test_unparseable_whois_no_adjustment(self):
        engine = self.engine(make_config(self.store, enabled=("whois",)))
        with patch("url_enrichment.providers.whois.run_whois", new=AsyncMock(return_value="garbage")):
            r = await engine.enrich_url("https://example.com", 10.0)

        self.assertEqual(r.enriched_score, 10.0)
        self.assertIsNone(r.signals.domain_age_years)

    async def test_low_rating_penalty(self):
        client = mock_client(
            lambda req: httpx.Response(200, text='data-rating="1.8"')
            if req.url.host == "reviews.test"
            else httpx.Response(404)
        )
        try:
            engine = self.engine(make_config(self.store, enabled=("reviews",)), client=client)
            r = await engine.enrich_url("https://acme.test", 60.0)
        finally:
            await client.aclose()

        self.assertEqual(r.enriched_score, 55.0)
        self.assertEqual(r.signals.rating, 1.8)

    async def test_scores_are_not_clamped(self):
        engine = self.engine(make_config(self.store, enabled=("trends",)))
        r = await engine.enrich_url("https://aitech.io", 95.0)
        self.assertEqual(r.enriched_score, 115.0)

    async def test_invalid_input(self):
        engine = self.engine(make_config(self.store))
        with self.assertRaises(InvalidURLError):
            await engine.enrich_url("not a url", 50.0)
        with self.assertRaises(ValueError):
            await engine.enrich_url("https://example.com", float("nan"))
        with self.assertRaises(ValueError):
            await engine.enrich_url("https://example.com", "50")  # type: ignore[arg-type]


class TestAggregation(_EngineTestCase):
    async def test_enriched_score_is_base_plus_sum(self):
        providers = [FakeProvider("a", 3.5), FakeProvider("b", None), FakeProvider("c", -1.25)]
        engine = self.engine(make_config(self.store, enabled=("a", "b", "c")), providers)

        r = await engine.enrich_url("https://example.com", 12.0)

        self.assertEqual([a.source for a in r.adjustments], ["a", "c"])
        self.assertEqual(r.enriched_score, r.base_score + sum(a.adjustment for a in r.adjustments))
        self.assertEqual(r.enriched_score, 14.25)

    async def test_signal_uses_observation_or_true(self):
        providers = [
            FakeProvider("a", 1.0, signal="rating", observation=2.2),
            FakeProvider("b", 1.0, signal="has_funding"),
            FakeProvider("c", None, signal="is_trending"),
        ]
        engine = self.engine(make_config(self.store, enabled=("a", "b", "c")), providers)

        r = await engine.enrich_url("https://example.com", 0.0)

        self.assertEqual(r.signals.rating, 2.2)
        self.assertTrue(r.signals.has_funding)
        self.assertIsNone(r.signals.is_trending)


class TestCaching(_EngineTestCase):
    async def test_second_call_is_served_from_cache(self):
        p = FakeProvider("a", 2.0)
        engine = self.engine(make_config(self.store, enabled=("a",)), [p])

        first = await engine.enrich_url("https://example.com", 10.0)
        remaining = engine.rate_limiter.remaining("a", 100, now=self.clock.now)
        self.clock.advance(minutes=5)
        second = await engine.enrich_url("https://example.com", 10.0)

        self.assertEqual(second, first)
        self.assertEqual(p.calls, 1)
        # A hit does not touch the rate limiter.
        self.assertEqual(engine.rate_limiter.remaining("a", 100, now=self.clock.now), remaining)

    async def test_cache_hit_returns_stored_score_even_for_new_base_score(self):
        engine = self.engine(make_config(self.store, enabled=("a",)), [FakeProvider("a", 2.0)])
        await engine.enrich_url("https://example.com", 10.0)
        again = await engine.enrich_url("https://example.com", 99.0)
        self.assertEqual(again.base_score, 10.0)

    async def test_expired_entry_recomputes(self):
        p = FakeProvider("a", 2.0)
        engine = self.engine(make_config(self.store, enabled=("a",), ttl_hours=1), [p])

        await engine.enrich_url("https://example.com", 10.0)
        self.clock.advance(hours=1, seconds=1)
        r = await engine.enrich_url("https://example.com", 10.0)

        self.assertEqual(p.calls, 2)
        self.assertEqual(r.computed_at, self.clock.now)

    async def test_cache_survives_engine_restart(self):
        cfg = make_config(self.store, enabled=("a",))
        p1 = FakeProvider("a", 2.0)
        await self.engine(cfg, [p1]).enrich_url("https://example.com", 1.0)

        p2 = FakeProvider("a", 2.0)
        r = await self.engine(cfg, [p2]).enrich_url("https://example.com", 1.0)

        self.assertEqual(p2.calls, 0)
        self.assertEqual(r.enriched_score, 3.0)

    async def test_cache_io_failure_still_returns_result(self):
        engine = self.engine(make_config(self.store, enabled=("a",)), [FakeProvider("a", 2.0)])
        with patch.object(ResultCache, "_connect", side_effect=sqlite3.OperationalError("disk I/O error")):
            with self.assertLogs("url_enrichment.cache", level="WARNING"):
                r = await engine.enrich_url("https://example.com", 1.0)
        self.assertEqual(r.enriched_score, 3.0)

    async def test_unserializable_signal_skips_cache_write(self):
        p = FakeProvider("plug", 1.0, signal="rating", observation={1, 2})
        engine = self.engine(make_config(self.store, enabled=("plug",)), [p])

        with self.assertLogs("url_enrichment.cache", level="WARNING"):
            r = await engine.enrich_url("https://example.com", 50.0)

        self.assertEqual(r.enriched_score, 51.0)
        self.assertEqual(r.signals.rating, {1, 2})
        self.assertIsNone(engine.cache.get("https://example.com", now=self.clock.now))

    async def test_unusable_store_is_config_error(self):
        blocker = os.path.join(self._tmp.name, "file")
        with open(blocker, "w") as f:
            f.write("x")
        with self.assertRaises(ConfigError):
            self.engine(make_config(os.path.join(blocker, "cache.sqlite")))


class TestRateLimiting(_EngineTestCase):
    async def test_quota_then_denied_then_window_slides(self):
        p = FakeProvider("a", 1.0)
        engine = self.engine(make_config(self.store, enabled=("a",), tables={"a": {"rate_limit_per_hour": 2}}), [p])

        r1 = await engine.enrich_url("https://one.test", 0.0)
        r2 = await engine.enrich_url("https://two.test", 0.0)
        r3 = await engine.enrich_url("https://three.test", 0.0)

        self.assertEqual([len(r.adjustments) for r in (r1, r2, r3)], [1, 1, 0])
        self.assertEqual(p.calls, 2)

        self.clock.advance(hours=1, seconds=1)
        r4 = await engine.enrich_url("https://four.test", 0.0)
        self.assertEqual(len(r4.adjustments), 1)

    async def test_denied_provider_does_not_block_others(self):
        providers = [FakeProvider("a", 1.0), FakeProvider("b", 2.0)]
        cfg = make_config(self.store, enabled=("a", "b"), tables={"a": {"rate_limit_per_hour": 0}})
        engine = self.engine(cfg, providers)

        r = await engine.enrich_url("https://example.com", 0.0)
        self.assertEqual([a.source for a in r.adjustments], ["b"])

    async def test_disabled_and_unavailable_providers_consume_no_quota(self):
        disabled = FakeProvider("off", 1.0)
        unavailable = FakeProvider("keyless", 1.0, available=False)
        cfg = make_config(self.store, enabled=("keyless",))
        engine = self.engine(cfg, [disabled, unavailable])

        await engine.enrich_url("https://example.com", 0.0)

        self.assertEqual(disabled.calls, 0)
        self.assertEqual(unavailable.calls, 0)
        self.assertEqual(engine.rate_limiter.remaining("keyless", 100, now=self.clock.now), 100)
        self.assertEqual(engine.rate_limiter.remaining("off", 100, now=self.clock.now), 100)

    async def test_concurrent_calls_share_quota(self):
        p = FakeProvider("a", 1.0)
        engine = self.engine(make_config(self.store, enabled=("a",), tables={"a": {"rate_limit_per_hour": 3}}), [p])

        results = await asyncio.gather(*(engine.enrich_url(f"https://site{i}.test", 0.0) for i in range(8)))

        self.assertEqual(sum(len(r.adjustments) for r in results), 3)
        self.assertEqual(p.calls, 3)


class TestDegradation(_EngineTestCase):
    async def test_timeout_only_affects_that_provider(self):
        providers = [FakeProvider("slow", 5.0, delay=10), FakeProvider("fast", 1.0)]
        cfg = make_config(self.store, enabled=("slow", "fast"), tables={"slow": {"timeout_seconds": 1}})
        engine = self.engine(cfg, providers)

        r = await engine.enrich_url("https://example.com", 0.0)
        self.assertEqual([a.source for a in r.adjustments], ["fast"])

    async def test_crashing_provider_is_absorbed(self):
        providers = [FakeProvider("bad", 1.0, error=RuntimeError("boom")), FakeProvider("good", 2.0)]
        engine = self.engine(make_config(self.store, enabled=("bad", "good")), providers)

        with self.assertLogs("url_enrichment.engine", level="WARNING"):
            r = await engine.enrich_url("https://example.com", 0.0)
        self.assertEqual(r.enriched_score, 2.0)

    async def test_total_outage_returns_base_score(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        client = mock_client(handler)
        try:
            cfg = make_config(self.store, enabled=("shopify", "reviews", "funding", "whois"))
            engine = self.engine(cfg, client=client)
            with patch("url_enrichment.providers.whois.run_whois", new=AsyncMock(return_value=None)):
                r = await engine.enrich_url("https://example.com", 42.0)
        finally:
            await client.aclose()

        self.assertEqual(r.enriched_score, 42.0)
        self.assertEqual(r.adjustments, ())
        self.assertEqual(r.site_type, SiteType.UNKNOWN)


class TestParallelFanOut(_EngineTestCase):
    async def _run(self, parallel):
        providers = [FakeProvider("a", 1.0, delay=0.05), FakeProvider("b", 2.0), FakeProvider("c", 3.0, delay=0.02)]
        cfg = make_config(self.store, enabled=("a", "b", "c"), engine={"parallel_providers": parallel})
        engine = self.engine(cfg, providers)
        return await engine.enrich_url("https://example.com", 0.0)

    async def test_parallel_matches_sequential_order(self):
        sequential = await self._run(False)
        os.remove(self.store)
        parallel = await self._run(True)

        self.assertEqual(parallel.adjustments, sequential.adjustments)
        self.assertEqual([a.source for a in parallel.adjustments], ["a", "b", "c"])


class TestBatch(_EngineTestCase):
    async def test_enrich_many_order_and_errors(self):
        engine = self.engine(make_config(self.store, enabled=("trends",)))
        items = [("https://techstore.com", 10.0), ("http://", 5.0), ("https://example.com", 20.0)]

        results = await engine.enrich_many(items, max_concurrency=2)

        self.assertEqual([r["url"] for r in results], [u for u, _ in items])
        self.assertEqual(results[0]["enriched_score"], 30.0)
        self.assertIn("error", results[1])
        self.assertEqual(results[1]["base_score"], 5.0)
        self.assertEqual(results[2]["enriched_score"], 20.0)

    async def test_enrich_many_empty(self):
        engine = self.engine(make_config(self.store))
        self.assertEqual(await engine.enrich_many([]), [])

    async def test_provider_status(self):
        cfg = make_config(self.store, enabled=("trends", "whois"), tables={"whois": {"rate_limit_per_hour": 7}})
        engine = self.engine(cfg)
        with patch("url_enrichment.providers.whois.run_whois", new=AsyncMock(return_value=None)):
            await engine.enrich_url("https://example.com", 1.0)

        status = {s["name"]: s for s in engine.provider_status()}
        self.assertEqual(list(status), ["trends", "shopify", "funding", "reviews", "whois"])
        self.assertTrue(status["trends"]["enabled"])
        self.assertFalse(status["shopify"]["enabled"])
        self.assertEqual(status["whois"]["rate_limit_per_hour"], 7)
        self.assertEqual(status["trends"]["remaining"], 99)


class TestLifecycle(unittest.IsolatedAsyncioTestCase):
    async def test_owned_client_closed_on_exit(self):
        with tempfile.TemporaryDirectory() as d:
            cfg = make_config(os.path.join(d, "c.sqlite"))
            async with EnrichmentEngine(cfg, load_plugins=False) as engine:
                client = engine.client
            self.assertTrue(client.is_closed)

    async def test_injected_client_left_open(self):
        with tempfile.TemporaryDirectory() as d:
            cfg = make_config(os.path.join(d, "c.sqlite"))
            async with mock_client() as client:
                async with EnrichmentEngine(cfg, client=client, load_plugins=False):
                    pass
                self.assertFalse(client.is_closed)

    async def test_enrich_score_one_shot(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "api_config.toml")
            with open(path, "w") as f:
                f.write(f'[apis]\ntrends_enabled = true\n[trends]\n[cache]\nstore_path = "{d}/c.sqlite"\n')

            with patch("url_enrichment.engine.detect_site_type", new=AsyncMock(return_value=SiteType.UNKNOWN)):
                r = await enrich_score("https://cryptomarket.io", 50.0, config_path=path)

        self.assertEqual(r.enriched_score, 70.0)


if __name__ == "__main__":
    unittest.main()
