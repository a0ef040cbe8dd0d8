"""Engine configuration.

Configuration is a TOML file loaded once when the engine is built. Every error
(missing file, bad TOML, wrong types, missing provider settings) raises
`ConfigError`; nothing here is best-effort.

Layout::

    [apis]            <source>_enabled = true|false for every provider
    [<source>]        rate_limit_per_hour, timeout_seconds (+ provider extras)
    [cache]           store_path, ttl_hours
    [scoring]         adjustment magnitudes and thresholds
    [engine]          detection timeout, fan-out mode, batch concurrency
    [fixtures]        trending terms and page signatures
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from .cache import default_cache_path
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "URL_ENRICHMENT_CONFIG"
DEFAULT_CONFIG_PATH = "data/api_config.toml"

# Roster order of the built-in providers.
BUILTIN_SOURCES = ("trends", "shopify", "funding", "reviews", "whois")

# Provider tables may carry these keys in addition to the common ones.
_PROVIDER_EXTRAS: dict[str, tuple[str, ...]] = {
    "funding": ("api_key", "endpoint"),
    "reviews": ("endpoint",),
    "whois": ("command",),
}

# Providers that call a templated endpoint.
_ENDPOINT_SOURCES = ("funding", "reviews")


@dataclass(frozen=True)
class ProviderSettings:
    rate_limit_per_hour: int = 100
    timeout_seconds: int = 10
    # Provider-specific string options (api_key, endpoint, command).
    options: dict[str, str] = field(default_factory=dict)

    def option(self, key: str, default: str = "") -> str:
        return self.options.get(key, default)


@dataclass(frozen=True)
class CacheSettings:
    store_path: str = ""
    ttl_hours: int = 168


@dataclass(frozen=True)
class ScoringSettings:
    trending_boost: float = 20.0
    shopify_boost: float = 15.0
    funding_boost: float = 10.0
    low_rating_penalty: float = -5.0
    domain_age_boost: float = 5.0
    domain_age_min_years: float = 2.0
    low_rating_threshold: float = 3.0


@dataclass(frozen=True)
class EngineSettings:
    detection_timeout_seconds: int = 5
    parallel_providers: bool = False
    batch_concurrency: int = 10
    user_agent: str = "url-enrichment/1.0"


@dataclass(frozen=True)
class Fixtures:
    """Static lists the heuristics match against. Overridable per config/test."""

    trending_terms: tuple[str, ...] = ("ai", "tech", "crypto", "shop", "store", "market")
    min_token_length: int = 4
    platform_signatures: tuple[str, ...] = (
        "cdn.shopify.com",
        "Shopify.theme",
        "shopify-analytics",
        "shopify_pay",
        "myshopify.com",
    )
    shopify_markers: tuple[str, ...] = ("cdn.shopify.com", "myshopify.com")
    woocommerce_markers: tuple[str, ...] = ("woocommerce", "wp-content/plugins/woocommerce")
    ecommerce_markers: tuple[str, ...] = ("magento", "prestashop")


@dataclass(frozen=True)
class EnrichmentConfig:
    enabled: dict[str, bool]
    providers: dict[str, ProviderSettings]
    cache: CacheSettings = field(default_factory=CacheSettings)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    fixtures: Fixtures = field(default_factory=Fixtures)

    def is_enabled(self, source: str) -> bool:
        return bool(self.enabled.get(source, False))

    def provider(self, source: str) -> ProviderSettings:
        """Settings for `source`; disabled providers without a table get defaults."""
        return self.providers.get(source) or ProviderSettings()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EnrichmentConfig:
        return _parse(data)


def resolve_config_path(path: Optional[str] = None) -> str:
    return path or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def load_config(path: Optional[str] = None) -> EnrichmentConfig:
    """Read and validate a TOML config file."""
    resolved = resolve_config_path(path)
    try:
        with open(resolved, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {resolved}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config {resolved}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse config {resolved}: {e}") from e

    config = _parse(data)
    logger.debug(f"Loaded config from {resolved}")
    return config


# =============================================================================
# VALIDATION
# =============================================================================


def _table(data: Mapping[str, Any], name: str, *, required: bool = False) -> Mapping[str, Any]:
    value = data.get(name)
    if value is None:
        if required:
            raise ConfigError(f"Missing [{name}] section")
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"[{name}] must be a table")
    return value


def _int(table: Mapping[str, Any], section: str, key: str, default: int, *, minimum: int = 0) -> int:
    value = table.get(key, default)
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{section}.{key} must be >= {minimum}, got {value}")
    return value


def _float(table: Mapping[str, Any], section: str, key: str, default: float) -> float:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}")
    return float(value)


def _bool(table: Mapping[str, Any], section: str, key: str, default: bool) -> bool:
    value = table.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def _str(table: Mapping[str, Any], section: str, key: str, default: str) -> str:
    value = table.get(key, default)
    if not isinstance(value, str):
        raise ConfigError(f"{section}.{key} must be a string, got {value!r}")
    return value


def _str_list(table: Mapping[str, Any], section: str, key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = table.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{section}.{key} must be a list of strings")
    return tuple(value)


def _parse_enabled(apis: Mapping[str, Any]) -> dict[str, bool]:
    enabled: dict[str, bool] = {}
    for key, value in apis.items():
        if not key.endswith("_enabled"):
            raise ConfigError(f"Unknown key apis.{key} (expected <source>_enabled)")
        if not isinstance(value, bool):
            raise ConfigError(f"apis.{key} must be true or false, got {value!r}")
        enabled[key[: -len("_enabled")]] = value
    return enabled


def _parse_provider(source: str, table: Mapping[str, Any]) -> ProviderSettings:
    options: dict[str, str] = {}
    for key in _PROVIDER_EXTRAS.get(source, ()):
        if key in table:
            options[key] = _str(table, source, key, "")
    # Unknown string keys are passed through for plugin providers.
    for key, value in table.items():
        if key in ("rate_limit_per_hour", "timeout_seconds") or key in options:
            continue
        if isinstance(value, str):
            options[key] = value

    settings = ProviderSettings(
        rate_limit_per_hour=_int(table, source, "rate_limit_per_hour", 100),
        timeout_seconds=_int(table, source, "timeout_seconds", 10, minimum=1),
        options=options,
    )

    if source in _ENDPOINT_SOURCES:
        endpoint = settings.option("endpoint")
        if "{domain}" not in endpoint:
            raise ConfigError(f"{source}.endpoint must be a URL template containing {{domain}}")
    return settings


def _parse(data: Mapping[str, Any]) -> EnrichmentConfig:
    enabled = _parse_enabled(_table(data, "apis", required=True))

    providers: dict[str, ProviderSettings] = {}
    for source, on in enabled.items():
        table = data.get(source)
        if table is None:
            if on:
                raise ConfigError(f"Provider {source!r} is enabled but has no [{source}] section")
            continue
        if not isinstance(table, Mapping):
            raise ConfigError(f"[{source}] must be a table")
        if on:
            providers[source] = _parse_provider(source, table)

    cache = _table(data, "cache")
    scoring = _table(data, "scoring")
    engine = _table(data, "engine")
    fixtures = _table(data, "fixtures")
    d_scoring = ScoringSettings()
    d_engine = EngineSettings()
    d_fixtures = Fixtures()

    return EnrichmentConfig(
        enabled=enabled,
        providers=providers,
        cache=CacheSettings(
            store_path=_str(cache, "cache", "store_path", "") or default_cache_path(),
            ttl_hours=_int(cache, "cache", "ttl_hours", CacheSettings.ttl_hours, minimum=1),
        ),
        scoring=ScoringSettings(
            **{
                name: _float(scoring, "scoring", name, getattr(d_scoring, name))
                for name in ScoringSettings.__dataclass_fields__
            }
        ),
        engine=EngineSettings(
            detection_timeout_seconds=_int(
                engine, "engine", "detection_timeout_seconds", d_engine.detection_timeout_seconds, minimum=1
            ),
            parallel_providers=_bool(engine, "engine", "parallel_providers", d_engine.parallel_providers),
            batch_concurrency=_int(engine, "engine", "batch_concurrency", d_engine.batch_concurrency, minimum=1),
            user_agent=_str(engine, "engine", "user_agent", d_engine.user_agent),
        ),
        fixtures=Fixtures(
            trending_terms=_str_list(fixtures, "fixtures", "trending_terms", d_fixtures.trending_terms),
            min_token_length=_int(fixtures, "fixtures", "min_token_length", d_fixtures.min_token_length),
            platform_signatures=_str_list(
                fixtures, "fixtures", "platform_signatures", d_fixtures.platform_signatures
            ),
            shopify_markers=_str_list(fixtures, "fixtures", "shopify_markers", d_fixtures.shopify_markers),
            woocommerce_markers=_str_list(
                fixtures, "fixtures", "woocommerce_markers", d_fixtures.woocommerce_markers
            ),
            ecommerce_markers=_str_list(fixtures, "fixtures", "ecommerce_markers", d_fixtures.ecommerce_markers),
        ),
    )
