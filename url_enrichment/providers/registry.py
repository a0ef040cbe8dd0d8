"""Provider registry + roster helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import metadata

from ..config import EnrichmentConfig
from .base import Provider

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "url_enrichment.providers"


@dataclass
class Registry:
    # Insertion order is roster order.
    providers: dict[str, Provider]

    @staticmethod
    def load_entrypoints(
        config: EnrichmentConfig, group: str = ENTRY_POINT_GROUP
    ) -> dict[str, Provider]:
        """Load Provider plugins via Python entry points.

        - never raises (best-effort)
        - supports either a Provider instance or a factory taking (settings, scoring)
        - registers by `provider.name`
        """
        loaded: dict[str, Provider] = {}
        try:
            eps = list(metadata.entry_points(group=group))
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to list provider plugins: {e}")
            return loaded

        for ep in eps:
            try:
                obj = ep.load()
                if isinstance(obj, Provider):
                    provider = obj
                else:
                    provider = obj(config.provider(ep.name), config.scoring)
                if isinstance(provider, Provider):
                    loaded[provider.name] = provider
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Skipping provider plugin {ep.name!r}: {e}")
                continue

        return loaded

    def list_names(self) -> list[str]:
        return list(self.providers.keys())

    def extend(self, extra: dict[str, Provider]) -> None:
        """Append providers after the existing roster; existing names win."""
        for name, provider in extra.items():
            self.providers.setdefault(name, provider)

    def roster(self, config: EnrichmentConfig) -> list[Provider]:
        """Enabled providers in roster order (availability is checked per call)."""
        return [p for p in self.providers.values() if config.is_enabled(p.name)]
