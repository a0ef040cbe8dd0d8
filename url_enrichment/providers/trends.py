"""Trend signal from the URL's host.

Stand-in for a search-trends API: host labels are matched against a static
list of trending terms. No network call is made.
"""

from __future__ import annotations

from typing import Optional

from ..config import Fixtures, ProviderSettings, ScoringSettings
from ..models import ScoreAdjustment
from .base import Provider, ProviderContext


def host_keywords(host: str, min_length: int) -> list[str]:
    return [label.lower() for label in host.split(".") if len(label) >= min_length]


class TrendsProvider(Provider):
    name = "trends"
    signal = "is_trending"

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        scoring: Optional[ScoringSettings] = None,
        fixtures: Optional[Fixtures] = None,
    ):
        super().__init__(settings, scoring)
        self.fixtures = fixtures or Fixtures()

    def trending_matches(self, host: str) -> list[str]:
        terms = [t.lower() for t in self.fixtures.trending_terms]
        return [
            kw
            for kw in host_keywords(host, self.fixtures.min_token_length)
            if any(term in kw for term in terms)
        ]

    async def enrich(self, url: str, ctx: ProviderContext) -> Optional[ScoreAdjustment]:
        if not self.trending_matches(ctx.host):
            return None
        return ScoreAdjustment(
            source="Trends",
            adjustment=self.scoring.trending_boost,
            reason="Domain contains trending keywords",
        )
