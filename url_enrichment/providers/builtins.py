"""Built-in provider roster."""

from __future__ import annotations

from ..config import EnrichmentConfig
from .base import Provider
from .funding import FundingProvider
from .platform import ShopifyDetectionProvider
from .reviews import ReviewsProvider
from .trends import TrendsProvider
from .whois import WhoisProvider


def builtin_providers(config: EnrichmentConfig) -> dict[str, Provider]:
    """Built-in providers keyed by name, in roster order."""
    scoring = config.scoring
    fixtures = config.fixtures
    return {
        "trends": TrendsProvider(config.provider("trends"), scoring, fixtures),
        "shopify": ShopifyDetectionProvider(config.provider("shopify"), scoring, fixtures),
        "funding": FundingProvider(config.provider("funding"), scoring),
        "reviews": ReviewsProvider(config.provider("reviews"), scoring),
        "whois": WhoisProvider(config.provider("whois"), scoring),
    }
