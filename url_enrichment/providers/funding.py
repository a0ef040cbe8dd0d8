"""Funding signal from a company-data API.

The endpoint is a URL template (`{domain}` is substituted) answering JSON. A
body with `has_funding: true` or a positive `funding_total` earns a boost.
Without an API key the provider is unavailable and never runs.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional

from ..fetch import fetch_page
from ..models import ScoreAdjustment
from .base import Provider, ProviderContext

logger = logging.getLogger(__name__)

API_KEY_ENV = "FUNDING_API_KEY"


def has_funding(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    if payload.get("has_funding") is True:
        return True
    total = payload.get("funding_total")
    return isinstance(total, (int, float)) and not isinstance(total, bool) and total > 0


class FundingProvider(Provider):
    name = "funding"
    signal = "has_funding"

    @property
    def api_key(self) -> str:
        return self.settings.option("api_key") or os.getenv(API_KEY_ENV, "")

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def enrich(self, url: str, ctx: ProviderContext) -> Optional[ScoreAdjustment]:
        endpoint = self.settings.option("endpoint").format(domain=ctx.host)
        page = await fetch_page(
            ctx.client,
            endpoint,
            timeout=ctx.timeout,
            headers={"X-API-Key": self.api_key, "Accept": "application/json"},
        )
        if not page.success:
            return None

        try:
            payload = json.loads(page.body)
        except ValueError:
            logger.debug(f"Malformed funding response for {ctx.host}")
            return None

        if not has_funding(payload):
            return None

        return ScoreAdjustment(
            source="Funding",
            adjustment=self.scoring.funding_boost,
            reason="Company has recorded funding",
        )
