"""Models for url-enrichment.

We keep the core library lightweight (plain dataclasses, no pydantic).
These dataclasses define the stable result contract; the cache stores the
JSON form produced by `EnrichedResult.to_dict()` and rebuilds it verbatim.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SiteType(str, Enum):
    SHOPIFY = "Shopify"
    WOOCOMMERCE = "WooCommerce"
    CUSTOM = "Custom"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ScoreAdjustment:
    source: str
    # Signed percentage points.
    adjustment: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "adjustment": self.adjustment, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreAdjustment:
        return cls(
            source=str(data["source"]),
            adjustment=float(data["adjustment"]),
            reason=str(data["reason"]),
        )


@dataclass(frozen=True)
class EnrichmentSignals:
    """Values gathered incidentally while enriching. Absent means not observed."""

    is_trending: Optional[bool] = None
    is_shopify: Optional[bool] = None
    has_funding: Optional[bool] = None
    rating: Optional[float] = None
    domain_age_years: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EnrichmentSignals:
        data = data or {}
        return cls(**{k: data.get(k) for k in SIGNAL_FIELDS})


SIGNAL_FIELDS = ("is_trending", "is_shopify", "has_funding", "rating", "domain_age_years")


@dataclass(frozen=True)
class EnrichedResult:
    url: str
    base_score: float
    enriched_score: float
    adjustments: tuple[ScoreAdjustment, ...] = ()
    site_type: SiteType = SiteType.UNKNOWN
    signals: EnrichmentSignals = field(default_factory=EnrichmentSignals)
    computed_at: Optional[datetime] = None  # UTC

    @property
    def total_adjustment(self) -> float:
        return sum(a.adjustment for a in self.adjustments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "base_score": self.base_score,
            "enriched_score": self.enriched_score,
            "adjustments": [a.to_dict() for a in self.adjustments],
            "site_type": self.site_type.value,
            "signals": self.signals.to_dict(),
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnrichedResult:
        computed_at = data.get("computed_at")
        return cls(
            url=str(data["url"]),
            base_score=float(data["base_score"]),
            enriched_score=float(data["enriched_score"]),
            adjustments=tuple(ScoreAdjustment.from_dict(a) for a in data.get("adjustments") or []),
            site_type=SiteType(data.get("site_type") or SiteType.UNKNOWN.value),
            signals=EnrichmentSignals.from_dict(data.get("signals")),
            computed_at=datetime.fromisoformat(computed_at) if computed_at else None,
        )
