"""URL Enrichment - score adjustments from unreliable external signals."""

from .config import EnrichmentConfig, load_config
from .engine import EnrichmentEngine, enrich_score
from .errors import ConfigError, EnrichmentError, InvalidURLError, RateLimitExceeded
from .models import EnrichedResult, EnrichmentSignals, ScoreAdjustment, SiteType

__version__ = "1.0.0"
__all__ = [
    "EnrichmentEngine",
    "EnrichmentConfig",
    "load_config",
    "enrich_score",
    "EnrichedResult",
    "EnrichmentSignals",
    "ScoreAdjustment",
    "SiteType",
    "EnrichmentError",
    "ConfigError",
    "InvalidURLError",
    "RateLimitExceeded",
]
