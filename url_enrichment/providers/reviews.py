"""Customer review rating.

Fetches a review page (URL template, `{domain}` substituted) and reads the
aggregate rating from its markup. A rating below the threshold is penalized.
"""

from __future__ import annotations

import re
from typing import Optional

from ..fetch import fetch_page
from ..models import ScoreAdjustment
from .base import Provider, ProviderContext

RATING_PATTERNS = (
    r'"ratingValue"\s*:\s*"?(\d+(?:\.\d+)?)',
    r'data-rating="(\d+(?:\.\d+)?)"',
)


def parse_rating(html: str) -> Optional[float]:
    for pattern in RATING_PATTERNS:
        match = re.search(pattern, html)
        if match:
            return float(match.group(1))
    return None


class ReviewsProvider(Provider):
    name = "reviews"
    signal = "rating"

    async def enrich(self, url: str, ctx: ProviderContext) -> Optional[ScoreAdjustment]:
        endpoint = self.settings.option("endpoint").format(domain=ctx.host)
        page = await fetch_page(ctx.client, endpoint, timeout=ctx.timeout)
        if not page.success:
            return None

        rating = parse_rating(page.body)
        if rating is None:
            return None

        ctx.observations[self.signal] = rating
        if rating >= self.scoring.low_rating_threshold:
            return None

        return ScoreAdjustment(
            source="Reviews",
            adjustment=self.scoring.low_rating_penalty,
            reason=f"Low customer rating: {rating:.1f}",
        )
