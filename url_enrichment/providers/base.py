"""Provider interface.

A Provider is a thin adapter over one external signal source. Given a URL it
optionally produces one score adjustment. It runs under a timeout imposed by the
engine and must be safe to run concurrently with other providers.

Operational failures (network errors, bad responses, missing tools) are not
errors: the provider returns None and the engine moves on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from ..config import ProviderSettings, ScoringSettings
from ..models import ScoreAdjustment


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProviderContext:
    client: httpx.AsyncClient
    host: str
    timeout: int = 10
    # Values measured while enriching (e.g. rating, domain age). The engine copies
    # the provider's own signal from here when the provider fires.
    observations: dict[str, Any] = field(default_factory=dict)
    clock: Callable[[], datetime] = _utc_now


class Provider:
    """Base interface for providers."""

    # Stable source identifier: config table, `apis.<name>_enabled`, rate-limit key.
    name: str

    # EnrichmentSignals field set when this provider fires (None: no signal).
    signal: Optional[str] = None

    def __init__(self, settings: Optional[ProviderSettings] = None, scoring: Optional[ScoringSettings] = None):
        self.settings = settings or ProviderSettings()
        self.scoring = scoring or ScoringSettings()

    def is_available(self) -> bool:
        """Whether this provider can run in the current environment.

        Example: requires an API key.
        """
        return True

    async def enrich(self, url: str, ctx: ProviderContext) -> Optional[ScoreAdjustment]:
        raise NotImplementedError
