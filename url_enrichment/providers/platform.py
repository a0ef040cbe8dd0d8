"""Shopify storefront detection.

Fetches the page once and looks for literal Shopify signatures in the markup.
"""

from __future__ import annotations

from typing import Optional

from ..config import Fixtures, ProviderSettings, ScoringSettings
from ..fetch import fetch_page
from ..models import ScoreAdjustment
from .base import Provider, ProviderContext


class ShopifyDetectionProvider(Provider):
    name = "shopify"
    signal = "is_shopify"

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        scoring: Optional[ScoringSettings] = None,
        fixtures: Optional[Fixtures] = None,
    ):
        super().__init__(settings, scoring)
        self.fixtures = fixtures or Fixtures()

    async def enrich(self, url: str, ctx: ProviderContext) -> Optional[ScoreAdjustment]:
        page = await fetch_page(ctx.client, url, timeout=ctx.timeout)
        if not page.success:
            return None

        if not any(sig in page.body for sig in self.fixtures.platform_signatures):
            return None

        return ScoreAdjustment(
            source="Shopify Detection",
            adjustment=self.scoring.shopify_boost,
            reason="Detected as Shopify store",
        )
